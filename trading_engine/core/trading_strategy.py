"""
매매 전략 추상 클래스 정의.

[ 역할 ]
    매매 로직의 인터페이스를 정의.
    최근 종가 윈도우와 포지션 정보를 받아 진입/청산/없음 시그널을 생성.
    시그널은 윈도우의 순수 함수이며 실행 간에 상태를 남기지 않는다.

[ 구현체 ]
    - strategies/sma_crossover.py::SMACrossoverStrategy (이동평균 교차)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_symbol()에서
      봉마다 generate_signal()을 호출하여 시그널을 받고 체결 처리

[ 데이터 흐름 ]
    closes(종가 리스트) + position_info → generate_signal() → Signal 반환
    Signal.signal_type이 ENTER_LONG/EXIT_LONG이면 엔진이 체결
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence


class SignalType(Enum):
    """전략이 반환하는 시그널 종류."""
    NONE = "none"
    ENTER_LONG = "enter_long"
    EXIT_LONG = "exit_long"


@dataclass
class Signal:
    """generate_signal()의 반환값."""
    signal_type: SignalType
    ticker: str
    price: float = 0.0       # 시그널 발생 시점 종가
    reason: str = ""         # 시그널 발생 사유 (로깅용)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PositionInfo:
    """현재 보유 현황. 백테스트에서는 롱 포지션만 존재한다."""
    ticker: str
    shares: int = 0

    @property
    def is_long(self) -> bool:
        return self.shares > 0


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 generate_signal()과
    min_history(시그널이 유효해지는 최소 봉 수)를 구현하면 된다.
    """

    def __init__(self, name: str, params: dict[str, Any] | None = None):
        self.name = name
        self.params = params or {}  # config.yaml에서 로드된 전략 파라미터

    @property
    @abstractmethod
    def min_history(self) -> int:
        """시그널 평가에 필요한 최소 종가 개수."""
        ...

    @abstractmethod
    def generate_signal(
        self,
        closes: Sequence[float],
        position_info: PositionInfo,
    ) -> Signal:
        """매매 시그널 생성.

        Args:
            closes: 현재 봉까지의 종가 (오래된 것부터)
            position_info: 현재 포지션 정보

        Returns:
            Signal: 진입/청산/없음
        """
        ...
