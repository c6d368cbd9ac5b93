"""
테스트/페이퍼 트레이딩용 Mock 브로커 및 데이터 제공자 구현.

[ 역할 ]
    실제 증권사 API 없이 주문/포지션을 메모리에서 시뮬레이션.
    롱/숏 포지션, 미체결 주문, 장 운영 시각, 주문 거부를 모사한다.

[ 포함 클래스 ]
    MockDataProvider - core/data_provider.py::DataProvider 구현체
                       미리 로드된 DataFrame에서 OHLCV 데이터 제공
    MockBroker       - core/broker_api.py::BrokerAPI 구현체
                       set_price()로 지정한 가격에 시장가 주문을 즉시 체결

[ 호출하는 곳 ]
    - run_long_short.py --broker mock (페이퍼 모드, 시세 소스의 최신가로 체결)
    - tests/ 의 리밸런서/러너 테스트
"""

import logging
import threading
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import pandas as pd

from trading_engine.core.broker_api import (
    AccountInfo,
    BrokerAPI,
    LivePosition,
    MarketClock,
    OpenOrder,
    OrderIntent,
    OrderResult,
    OrderSide,
    OrderStatus,
    PositionSide,
)
from trading_engine.core.data_provider import OHLCV_COLUMNS, DataProvider
from trading_engine.core.errors import OrderRejection

logger = logging.getLogger("trading_engine.broker")


# ─── Mock 데이터 제공자 ──────────────────────────────────────────────────────

class MockDataProvider(DataProvider):
    """DataFrame 기반 Mock 데이터 제공자.

    사용법:
        provider = MockDataProvider()
        provider.load_data("AAPL", minute_bars_df)
        closes = provider.get_recent_bars("AAPL", 10)   # 마지막 10개 봉

    get_recent_bars()는 로드된 마지막 봉을 "현재"로 보고 마지막 N개 봉을 반환한다.
    """

    def __init__(self):
        self._data: dict[str, pd.DataFrame] = {}      # ticker → OHLCV DataFrame
        self._errors: dict[str, Exception] = {}       # ticker → 조회 시 던질 예외

    def load_data(self, ticker: str, df: pd.DataFrame) -> None:
        self._data[ticker] = df.copy().reset_index(drop=True)

    def set_error(self, ticker: str, error: Exception) -> None:
        """해당 종목 조회 시 예외 발생 (장애 시뮬레이션용)."""
        self._errors[ticker] = error

    def _frame(self, ticker: str) -> pd.DataFrame:
        if ticker in self._errors:
            raise self._errors[ticker]
        if ticker not in self._data:
            return pd.DataFrame(columns=OHLCV_COLUMNS)
        return self._data[ticker]

    def get_ohlcv(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        df = self._frame(ticker)
        if df.empty:
            return df.copy()
        stamps = pd.to_datetime(df["date"])
        mask = (stamps >= pd.Timestamp(start_date)) & (stamps < pd.Timestamp(end_date) + pd.Timedelta(days=1))
        return df[mask].copy().reset_index(drop=True)

    def get_recent_bars(self, ticker: str, minutes: int) -> pd.DataFrame:
        return self._frame(ticker).tail(minutes).copy().reset_index(drop=True)

    def get_tickers(self) -> list[str]:
        return list(self._data.keys())


# ─── Mock 브로커 ─────────────────────────────────────────────────────────────

class MockBroker(BrokerAPI):
    """Mock 브로커. 실제 주문 없이 가상 계좌로 매매 시뮬레이션.

    포지션은 부호 있는 수량으로 관리한다 (양수 = 롱, 음수 = 숏).
    주문은 submit_order() 시점에 set_price()로 지정된 가격으로 전량 체결된다.
    price_source가 주어지면 체결과 평가 직전에 그 함수로 현재가를 다시 받아온다.
    reject_symbols에 들어 있는 종목의 주문은 REJECTED로 반환된다.
    수량이 0 이하인 주문은 OrderRejection을 던진다.
    """

    def __init__(
        self,
        initial_cash: float = 100_000,
        price_source: Optional[Callable[[str], float]] = None,
    ):
        self.initial_cash = initial_cash
        self.price_source = price_source
        self.cash = initial_cash
        self.reject_symbols: set[str] = set()
        self.submitted: list[OrderIntent] = []       # 브로커에 도달한 모든 주문 (거부 포함)
        self.cancelled: list[str] = []

        self._positions: dict[str, int] = {}          # symbol → 부호 있는 수량
        self._prices: dict[str, float] = {}
        self._open_orders: dict[str, OpenOrder] = {}
        self._clock: Optional[MarketClock] = None
        self._connected = False
        self._lock = threading.Lock()

    def connect(self) -> bool:
        self._connected = True
        return True

    def disconnect(self) -> None:
        self._connected = False

    # ─── 시뮬레이션 설정 ──────────────────────────────────────────────────

    def set_price(self, symbol: str, price: float) -> None:
        self._prices[symbol] = price

    def set_position(self, symbol: str, qty: int) -> None:
        """포지션 직접 설정. qty < 0이면 숏."""
        if qty == 0:
            self._positions.pop(symbol, None)
        else:
            self._positions[symbol] = qty

    def add_open_order(self, symbol: str, qty: int, side: OrderSide) -> str:
        order_id = str(uuid.uuid4())[:8]
        self._open_orders[order_id] = OpenOrder(order_id=order_id, symbol=symbol, qty=qty, side=side)
        return order_id

    def set_clock(self, clock: MarketClock) -> None:
        self._clock = clock

    def position_qty(self, symbol: str) -> int:
        """부호 있는 보유 수량."""
        return self._positions.get(symbol, 0)

    def refresh_prices(self, symbols: Iterable[str]) -> None:
        """price_source로 현재가 갱신. 0 이하이거나 조회 실패면 직전 가격 유지."""
        if self.price_source is None:
            return
        for symbol in symbols:
            try:
                price = self.price_source(symbol)
            except Exception as e:
                logger.warning(f"{symbol} 현재가 조회 실패, 직전 가격 유지: {e}")
                continue
            if price > 0:
                with self._lock:
                    self._prices[symbol] = price

    # ─── BrokerAPI 구현 ───────────────────────────────────────────────────

    def get_account_info(self) -> AccountInfo:
        with self._lock:
            held = list(self._positions)
        self.refresh_prices(held)
        with self._lock:
            market_value = sum(qty * self._prices.get(s, 0.0) for s, qty in self._positions.items())
            return AccountInfo(account_id="MOCK_ACCOUNT", equity=self.cash + market_value, cash=self.cash)

    def get_positions(self) -> list[LivePosition]:
        with self._lock:
            return [
                LivePosition(
                    symbol=symbol,
                    side=PositionSide.LONG if qty > 0 else PositionSide.SHORT,
                    qty=abs(qty),
                )
                for symbol, qty in self._positions.items()
            ]

    def get_open_orders(self) -> list[OpenOrder]:
        with self._lock:
            return list(self._open_orders.values())

    def submit_order(self, intent: OrderIntent) -> OrderResult:
        if intent.qty <= 0:
            raise OrderRejection(f"수량은 양수여야 함: {intent.qty}", intent)
        self.refresh_prices([intent.symbol])
        order_id = str(uuid.uuid4())[:8]
        with self._lock:
            self.submitted.append(intent)

            if intent.symbol in self.reject_symbols:
                return OrderResult(order_id, intent.symbol, intent.qty, intent.side,
                                   OrderStatus.REJECTED, message="Rejected by venue")

            price = self._prices.get(intent.symbol, 0.0)
            if price <= 0:
                return OrderResult(order_id, intent.symbol, intent.qty, intent.side,
                                   OrderStatus.REJECTED, message="No price")

            signed = intent.qty if intent.side == OrderSide.BUY else -intent.qty
            self.cash -= signed * price
            new_qty = self._positions.get(intent.symbol, 0) + signed
            if new_qty == 0:
                self._positions.pop(intent.symbol, None)
            else:
                self._positions[intent.symbol] = new_qty

            return OrderResult(
                order_id=order_id,
                symbol=intent.symbol,
                qty=intent.qty,
                side=intent.side,
                status=OrderStatus.FILLED,
                filled_qty=intent.qty,
                filled_price=price,
            )

    def cancel_order(self, order_id: str) -> bool:
        with self._lock:
            if self._open_orders.pop(order_id, None) is None:
                return False
            self.cancelled.append(order_id)
            return True

    def get_clock(self) -> MarketClock:
        if self._clock is not None:
            return self._clock
        now = datetime.now(timezone.utc)
        return MarketClock(
            timestamp=now,
            is_open=True,
            next_open=now + timedelta(days=1),
            next_close=now + timedelta(hours=6),
        )
