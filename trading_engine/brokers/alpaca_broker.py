"""
Alpaca 증권 BrokerAPI 구현.

[ 역할 ]
    alpaca-py TradingClient로 계좌 평가금, 보유 포지션(long/short), 미체결 주문,
    장 운영 시각을 조회하고 시장가(DAY) 주문 제출/취소를 담당한다.
    Alpaca 응답 모델은 엔진 공통 dataclass(core/broker_api.py)로 변환해서 돌려준다.

[ 인증 ]
    APCA_API_KEY_ID / APCA_API_SECRET_KEY 환경변수. 기본은 페이퍼 계좌(paper=True).

[ 호출하는 곳 ]
    - run_long_short.py --broker alpaca
"""

import logging
import os
from typing import Any, Optional

from alpaca.common.exceptions import APIError
from alpaca.trading.client import TradingClient
from alpaca.trading.enums import OrderSide as AlpacaOrderSide
from alpaca.trading.enums import QueryOrderStatus
from alpaca.trading.enums import TimeInForce as AlpacaTimeInForce
from alpaca.trading.requests import GetOrdersRequest, MarketOrderRequest

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
    TimeInForce,
)
from trading_engine.core.errors import GatewayUnavailableError, OrderRejection

logger = logging.getLogger("trading_engine.broker")

API_KEY_ENV = "APCA_API_KEY_ID"
SECRET_KEY_ENV = "APCA_API_SECRET_KEY"

# Alpaca 주문 상태 → 엔진 OrderStatus. 없는 상태는 PENDING
ALPACA_ORDER_STATUS = {
    "filled": OrderStatus.FILLED,
    "partially_filled": OrderStatus.PARTIALLY_FILLED,
    "canceled": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
    "done_for_day": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
}

ALPACA_TIME_IN_FORCE = {
    TimeInForce.DAY: AlpacaTimeInForce.DAY,
    TimeInForce.GTC: AlpacaTimeInForce.GTC,
}


def _value(field: Any) -> str:
    """Alpaca enum이면 .value, 아니면 문자열 그대로."""
    return str(getattr(field, "value", field)).lower()


def _qty(field: Any) -> int:
    """Alpaca 수량(문자열/소수)을 절대 정수 수량으로."""
    if field is None:
        return 0
    return abs(int(float(field)))


class AlpacaBroker(BrokerAPI):
    """Alpaca 브로커.

    사용 예:
        broker = AlpacaBroker()              # 환경변수 키, 페이퍼 계좌
        broker.connect()
        broker.submit_order(OrderIntent("AAPL", 10, OrderSide.BUY))

    client를 직접 넘기면 connect()는 키 확인 없이 그 client를 그대로 쓴다.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        paper: bool = True,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key or os.environ.get(API_KEY_ENV)
        self.secret_key = secret_key or os.environ.get(SECRET_KEY_ENV)
        self.paper = paper
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            raise GatewayUnavailableError("Alpaca에 연결되지 않았습니다. connect()를 먼저 호출하세요.")
        return self._client

    def connect(self) -> bool:
        if self._client is None:
            if not self.api_key or not self.secret_key:
                raise GatewayUnavailableError(f"Alpaca API 키 없음 ({API_KEY_ENV}, {SECRET_KEY_ENV})")
            self._client = TradingClient(self.api_key, self.secret_key, paper=self.paper)
        try:
            account = self._client.get_account()
        except APIError as e:
            raise GatewayUnavailableError(f"Alpaca 계좌 조회 실패: {e}") from e
        logger.info(f"Alpaca 연결 완료 (account={account.id}, paper={self.paper})")
        return True

    def disconnect(self) -> None:
        self._client = None
        logger.info("Alpaca 연결 해제")

    def get_account_info(self) -> AccountInfo:
        account = self.client.get_account()
        return AccountInfo(
            account_id=str(account.id),
            equity=float(account.equity),
            cash=float(account.cash),
        )

    def get_positions(self) -> list[LivePosition]:
        positions = []
        for p in self.client.get_all_positions():
            side = PositionSide.SHORT if _value(p.side) == "short" else PositionSide.LONG
            positions.append(LivePosition(symbol=p.symbol, side=side, qty=_qty(p.qty)))
        return positions

    def get_open_orders(self) -> list[OpenOrder]:
        orders = self.client.get_orders(filter=GetOrdersRequest(status=QueryOrderStatus.OPEN))
        return [
            OpenOrder(
                order_id=str(o.id),
                symbol=o.symbol,
                qty=_qty(o.qty),
                side=OrderSide(_value(o.side)),
            )
            for o in orders
        ]

    def submit_order(self, intent: OrderIntent) -> OrderResult:
        if intent.qty <= 0:
            raise OrderRejection(f"수량은 양수여야 함: {intent.qty}", intent)

        request = MarketOrderRequest(
            symbol=intent.symbol,
            qty=intent.qty,
            side=AlpacaOrderSide.BUY if intent.side == OrderSide.BUY else AlpacaOrderSide.SELL,
            time_in_force=ALPACA_TIME_IN_FORCE[intent.time_in_force],
        )
        try:
            order = self.client.submit_order(order_data=request)
        except APIError as e:
            raise OrderRejection(f"Alpaca 주문 거부 ({intent.symbol}): {e}", intent) from e

        status = ALPACA_ORDER_STATUS.get(_value(order.status), OrderStatus.PENDING)
        filled_price = float(order.filled_avg_price) if order.filled_avg_price else 0.0
        logger.debug(f"Alpaca 주문 {order.id}: {intent.side.value} {intent.qty} {intent.symbol} → {status.value}")
        return OrderResult(
            order_id=str(order.id),
            symbol=intent.symbol,
            qty=intent.qty,
            side=intent.side,
            status=status,
            filled_qty=_qty(order.filled_qty),
            filled_price=filled_price,
        )

    def cancel_order(self, order_id: str) -> bool:
        try:
            self.client.cancel_order_by_id(order_id)
        except APIError as e:
            logger.warning(f"Alpaca 주문 취소 실패 ({order_id}): {e}")
            return False
        return True

    def get_clock(self) -> MarketClock:
        clock = self.client.get_clock()
        return MarketClock(
            timestamp=clock.timestamp,
            is_open=bool(clock.is_open),
            next_open=clock.next_open,
            next_close=clock.next_close,
        )
