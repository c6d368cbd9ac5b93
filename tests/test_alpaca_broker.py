from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from alpaca.common.exceptions import APIError
from alpaca.trading.enums import OrderSide as AlpacaOrderSide
from alpaca.trading.enums import OrderStatus as AlpacaOrderStatus
from alpaca.trading.enums import PositionSide as AlpacaPositionSide
from alpaca.trading.enums import QueryOrderStatus
from alpaca.trading.enums import TimeInForce as AlpacaTimeInForce

from conftest import load_scores
from trading_engine.brokers.alpaca_broker import AlpacaBroker
from trading_engine.brokers.mock_broker import MockDataProvider
from trading_engine.core.broker_api import OrderIntent, OrderSide, OrderStatus, PositionSide
from trading_engine.core.errors import GatewayUnavailableError, OrderRejection
from trading_engine.data.market_data import MarketDataManager
from trading_engine.live.ranker import MomentumRanker
from trading_engine.live.rebalancer import PortfolioRebalancer

NOW = datetime(2024, 6, 3, 14, 0, tzinfo=timezone.utc)


class StubTradingClient:
    """TradingClient와 같은 메서드 이름으로 응답을 돌려주는 가짜 client."""

    def __init__(self) -> None:
        self.equity = "100000.00"
        self.positions: list[SimpleNamespace] = []
        self.open_orders: list[SimpleNamespace] = []
        self.order_status = AlpacaOrderStatus.ACCEPTED
        self.reject_symbols: set[str] = set()
        self.unknown_orders: set[str] = set()

        self.submitted: list = []
        self.cancelled: list[str] = []
        self.order_filters: list = []

    def get_account(self) -> SimpleNamespace:
        return SimpleNamespace(id="acct-1", equity=self.equity, cash="25000.00")

    def get_all_positions(self) -> list[SimpleNamespace]:
        return self.positions

    def get_orders(self, filter=None) -> list[SimpleNamespace]:
        self.order_filters.append(filter)
        return self.open_orders

    def submit_order(self, order_data) -> SimpleNamespace:
        if order_data.symbol in self.reject_symbols:
            raise APIError('{"code": 40310000, "message": "insufficient buying power"}')
        self.submitted.append(order_data)
        filled = self.order_status == AlpacaOrderStatus.FILLED
        return SimpleNamespace(
            id=f"ord-{len(self.submitted)}",
            status=self.order_status,
            filled_qty=str(order_data.qty) if filled else "0",
            filled_avg_price="101.25" if filled else None,
        )

    def cancel_order_by_id(self, order_id: str) -> None:
        if order_id in self.unknown_orders:
            raise APIError('{"code": 40410000, "message": "order not found"}')
        self.cancelled.append(order_id)

    def get_clock(self) -> SimpleNamespace:
        return SimpleNamespace(
            timestamp=NOW,
            is_open=False,
            next_open=NOW + timedelta(hours=3),
            next_close=NOW + timedelta(hours=9),
        )


@pytest.fixture
def client() -> StubTradingClient:
    return StubTradingClient()


@pytest.fixture
def alpaca(client: StubTradingClient) -> AlpacaBroker:
    broker = AlpacaBroker(client=client)
    broker.connect()
    return broker


def test_connect_without_keys_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APCA_API_KEY_ID", raising=False)
    monkeypatch.delenv("APCA_API_SECRET_KEY", raising=False)
    broker = AlpacaBroker()

    with pytest.raises(GatewayUnavailableError):
        broker.connect()
    with pytest.raises(GatewayUnavailableError):
        broker.get_account_info()


def test_account_and_positions_map_to_engine_types(alpaca: AlpacaBroker, client: StubTradingClient) -> None:
    client.positions = [
        SimpleNamespace(symbol="AAPL", side=AlpacaPositionSide.LONG, qty="12"),
        SimpleNamespace(symbol="TSLA", side=AlpacaPositionSide.SHORT, qty="-7"),
    ]

    account = alpaca.get_account_info()
    positions = {p.symbol: p for p in alpaca.get_positions()}

    assert account.account_id == "acct-1"
    assert account.equity == pytest.approx(100_000.0)
    assert account.cash == pytest.approx(25_000.0)
    assert positions["AAPL"].side == PositionSide.LONG and positions["AAPL"].qty == 12
    assert positions["TSLA"].side == PositionSide.SHORT and positions["TSLA"].qty == 7


def test_open_orders_query_only_open_status(alpaca: AlpacaBroker, client: StubTradingClient) -> None:
    client.open_orders = [SimpleNamespace(id="o-1", symbol="MSFT", qty="5", side=AlpacaOrderSide.SELL)]

    orders = alpaca.get_open_orders()

    assert [(o.order_id, o.symbol, o.qty, o.side) for o in orders] == [("o-1", "MSFT", 5, OrderSide.SELL)]
    assert client.order_filters[-1].status == QueryOrderStatus.OPEN


def test_submit_sends_day_market_order(alpaca: AlpacaBroker, client: StubTradingClient) -> None:
    result = alpaca.submit_order(OrderIntent(symbol="AAPL", qty=10, side=OrderSide.SELL))

    request = client.submitted[-1]
    assert request.symbol == "AAPL"
    assert request.qty == 10
    assert request.side == AlpacaOrderSide.SELL
    assert request.time_in_force == AlpacaTimeInForce.DAY
    assert result.ok
    assert result.status == OrderStatus.PENDING
    assert result.order_id == "ord-1"


def test_filled_order_reports_fill(alpaca: AlpacaBroker, client: StubTradingClient) -> None:
    client.order_status = AlpacaOrderStatus.FILLED
    result = alpaca.submit_order(OrderIntent(symbol="AAPL", qty=4, side=OrderSide.BUY))

    assert result.status == OrderStatus.FILLED
    assert result.filled_qty == 4
    assert result.filled_price == pytest.approx(101.25)


def test_rejected_status_and_api_error(alpaca: AlpacaBroker, client: StubTradingClient) -> None:
    client.order_status = AlpacaOrderStatus.REJECTED
    assert not alpaca.submit_order(OrderIntent(symbol="AAPL", qty=1, side=OrderSide.BUY)).ok

    client.reject_symbols.add("NVDA")
    with pytest.raises(OrderRejection) as excinfo:
        alpaca.submit_order(OrderIntent(symbol="NVDA", qty=1, side=OrderSide.BUY))
    assert excinfo.value.intent.symbol == "NVDA"

    with pytest.raises(OrderRejection):
        alpaca.submit_order(OrderIntent(symbol="AAPL", qty=0, side=OrderSide.BUY))


def test_cancel_reports_unknown_order_as_false(alpaca: AlpacaBroker, client: StubTradingClient) -> None:
    client.unknown_orders.add("gone")

    assert alpaca.cancel_order("o-1") is True
    assert alpaca.cancel_order("gone") is False
    assert client.cancelled == ["o-1"]


def test_clock_is_passed_through(alpaca: AlpacaBroker) -> None:
    clock = alpaca.get_clock()

    assert clock.is_open is False
    assert clock.next_open - clock.timestamp == timedelta(hours=3)


def test_rebalancer_drives_alpaca_gateway(
    provider: MockDataProvider,
    market_data: MarketDataManager,
    alpaca: AlpacaBroker,
    client: StubTradingClient,
) -> None:
    scores = {"L1": 0.05, "L2": 0.04, "N1": 0.01, "N2": 0.0, "N3": -0.01, "N4": -0.02, "S1": -0.04, "S2": -0.05}
    load_scores(provider, scores, last_price=100.0)
    client.open_orders = [SimpleNamespace(id="stale", symbol="N1", qty="3", side=AlpacaOrderSide.BUY)]
    rebalancer = PortfolioRebalancer(alpaca, MomentumRanker(market_data, list(scores)), market_data)

    report = rebalancer.rebalance()

    assert client.cancelled == ["stale"]
    sides = {r.symbol: r.side for r in client.submitted}
    assert sides == {
        "L1": AlpacaOrderSide.BUY,
        "L2": AlpacaOrderSide.BUY,
        "S1": AlpacaOrderSide.SELL,
        "S2": AlpacaOrderSide.SELL,
    }
    assert all(r.time_in_force == AlpacaTimeInForce.DAY for r in client.submitted)
    assert all(o.ok for o in report.sent_orders)
