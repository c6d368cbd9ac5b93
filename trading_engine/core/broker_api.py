"""
브로커 게이트웨이 추상 클래스 정의.

[ 역할 ]
    증권사와의 통신을 추상화하는 인터페이스 정의.
    계좌 평가금, 미체결 주문, 보유 포지션(long/short), 장 운영 시각을 조회하고
    시장가 주문 제출/취소를 담당한다. 실제 증권사 교체 시 이 클래스만 구현하면 됨.

[ 구현체 ]
    - brokers/mock_broker.py::MockBroker  (테스트/페이퍼 트레이딩용)
    - brokers/alpaca_broker.py::AlpacaBroker  (Alpaca 페이퍼/실계좌)

[ 호출하는 곳 ]
    - live/rebalancer.py::PortfolioRebalancer (포지션 조회, 주문 제출/취소)
    - live/runner.py::LongShortRunner (장 운영 시각 조회)
    - 진입점(run_long_short.py)에서 한 번 생성하여 참조로 주입
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


# ─── 주문 관련 Enum / Dataclass ─────────────────────────────────────────────

class OrderSide(Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """주문 타입. 이 엔진은 시장가(MARKET)만 낸다."""
    MARKET = "market"
    LIMIT = "limit"


class TimeInForce(Enum):
    DAY = "day"
    GTC = "gtc"


class OrderStatus(Enum):
    """주문 상태 추적용."""
    PENDING = "pending"
    FILLED = "filled"
    PARTIALLY_FILLED = "partially_filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    FAILED = "failed"


class PositionSide(Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class OrderIntent:
    """브로커로 보내는 주문 단위. 엔진 입장에서는 fire-and-forget."""
    symbol: str
    qty: int
    side: OrderSide
    type: OrderType = OrderType.MARKET
    time_in_force: TimeInForce = TimeInForce.DAY


@dataclass
class OrderResult:
    """submit_order()의 반환값. 성공/실패만 RECOVER 단계에서 사용된다."""
    order_id: str
    symbol: str
    qty: int
    side: OrderSide
    status: OrderStatus
    filled_qty: int = 0
    filled_price: float = 0.0
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status not in (OrderStatus.REJECTED, OrderStatus.FAILED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class OpenOrder:
    """미체결 주문. 리밸런싱 시작 시 전부 취소 대상."""
    order_id: str
    symbol: str
    qty: int
    side: OrderSide


@dataclass(frozen=True)
class LivePosition:
    """브로커 측 보유 포지션 스냅샷. qty는 항상 절대 수량."""
    symbol: str
    side: PositionSide
    qty: int


@dataclass
class AccountInfo:
    """get_account_info()의 반환값."""
    account_id: str
    equity: float           # 총 평가금 (현금 + 롱 평가 - 숏 평가)
    cash: float


@dataclass(frozen=True)
class MarketClock:
    """장 운영 상태. next_open/next_close는 timezone-aware datetime."""
    timestamp: datetime
    is_open: bool
    next_open: datetime
    next_close: datetime


# ─── 추상 클래스 ────────────────────────────────────────────────────────────

class BrokerAPI(ABC):
    """브로커 게이트웨이 추상 클래스.

    모든 브로커 구현체는 이 클래스를 상속받아 아래 메서드를 구현해야 한다.
    조회 메서드가 예외를 던지면 해당 리밸런싱 사이클 전체가 실패로 처리된다.
    """

    @abstractmethod
    def connect(self) -> bool:
        """API 연결."""
        ...

    @abstractmethod
    def disconnect(self) -> None:
        """API 연결 해제."""
        ...

    @abstractmethod
    def get_account_info(self) -> AccountInfo:
        """계좌 정보 조회."""
        ...

    @abstractmethod
    def get_positions(self) -> list[LivePosition]:
        """보유 포지션 조회 (long/short)."""
        ...

    @abstractmethod
    def get_open_orders(self) -> list[OpenOrder]:
        """미체결 주문 조회."""
        ...

    @abstractmethod
    def submit_order(self, intent: OrderIntent) -> OrderResult:
        """주문 제출. 거부 시 FAILED/REJECTED 상태를 반환하거나 OrderRejection을 던진다."""
        ...

    @abstractmethod
    def cancel_order(self, order_id: str) -> bool:
        """주문 취소."""
        ...

    @abstractmethod
    def get_clock(self) -> MarketClock:
        """장 운영 시각 조회."""
        ...
