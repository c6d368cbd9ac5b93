"""
단순이동평균 교차(SMA Crossover) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "단기 SMA가 장기 SMA 위에 있으면 롱 진입, 아래로 내려가면 전량 청산"

[ 전략 흐름 ]
    봉마다 generate_signal() 호출됨 (← backtest/engine.py에서)
        ├── 종가 개수 < slow_window → NONE (데이터 부족)
        ├── fast > slow 이고 미보유 → ENTER_LONG
        ├── fast < slow 이고 보유 중 → EXIT_LONG
        └── 그 외 → NONE (fast == slow 포함)

[ 파라미터 (config.yaml의 strategy 섹션에서 로드) ]
    fast_window:        단기 이동평균 기간 (봉)
    slow_window:        장기 이동평균 기간 (봉)
    require_crossover:  True면 직전 봉에서 fast <= slow 였을 때만 진입 (실제 교차 시점만 진입)
"""

from typing import Any, Sequence

from trading_engine.core.trading_strategy import (
    PositionInfo,
    Signal,
    SignalType,
    TradingStrategy,
)
from trading_engine.strategies import register


def calculate_sma(closes: Sequence[float], length: int) -> float:
    """최근 length개 종가의 단순평균.

    종가가 length개 미만이면 0을 반환한다. 0은 "데이터 부족" 표시이며
    실제 평균값으로 취급해서는 안 된다.
    """
    if length <= 0 or len(closes) < length:
        return 0.0
    window = closes[-length:]
    return sum(window) / length


@register("sma_crossover")
class SMACrossoverStrategy(TradingStrategy):
    """단기/장기 이동평균 교차 전략."""

    DEFAULT_PARAMS = {
        "fast_window": 20,
        "slow_window": 50,
        "require_crossover": False,
    }

    def __init__(self, params: dict[str, Any] | None = None):
        merged = {**self.DEFAULT_PARAMS, **(params or {})}
        super().__init__(name="sma_crossover", params=merged)
        if self.fast_window <= 0 or self.slow_window <= 0:
            raise ValueError(f"이동평균 기간은 양수여야 함: fast={self.fast_window}, slow={self.slow_window}")

    @property
    def fast_window(self) -> int:
        return int(self.params["fast_window"])

    @property
    def slow_window(self) -> int:
        return int(self.params["slow_window"])

    @property
    def require_crossover(self) -> bool:
        return bool(self.params["require_crossover"])

    @property
    def min_history(self) -> int:
        return max(self.fast_window, self.slow_window)

    def moving_averages(self, closes: Sequence[float]) -> tuple[float, float]:
        """(fast SMA, slow SMA). 데이터 부족 시 해당 값은 0."""
        return calculate_sma(closes, self.fast_window), calculate_sma(closes, self.slow_window)

    def _crossed_up(self, closes: Sequence[float]) -> bool:
        # 직전 봉에서 평균을 구할 수 없었으면 교차로 보지 않는다
        previous = closes[:-1]
        if len(previous) < self.min_history:
            return False
        prev_fast, prev_slow = self.moving_averages(previous)
        return prev_fast <= prev_slow

    def generate_signal(
        self,
        closes: Sequence[float],
        position_info: PositionInfo,
    ) -> Signal:
        """매매 시그널 생성."""
        ticker = position_info.ticker

        if len(closes) < self.min_history:
            return Signal(
                signal_type=SignalType.NONE,
                ticker=ticker,
                reason=f"데이터 부족 (최소 {self.min_history}봉 필요)",
            )

        current_price = float(closes[-1])
        fast, slow = self.moving_averages(closes)
        metadata = {"fast_sma": fast, "slow_sma": slow}

        if fast > slow and not position_info.is_long:
            if self.require_crossover and not self._crossed_up(closes):
                return Signal(SignalType.NONE, ticker, current_price, "교차 없음 (이미 fast > slow)", metadata)
            return Signal(
                signal_type=SignalType.ENTER_LONG,
                ticker=ticker,
                price=current_price,
                reason=f"SMA{self.fast_window}({fast:,.2f}) > SMA{self.slow_window}({slow:,.2f})",
                metadata=metadata,
            )

        if fast < slow and position_info.is_long:
            return Signal(
                signal_type=SignalType.EXIT_LONG,
                ticker=ticker,
                price=current_price,
                reason=f"SMA{self.fast_window}({fast:,.2f}) < SMA{self.slow_window}({slow:,.2f})",
                metadata=metadata,
            )

        return Signal(SignalType.NONE, ticker, current_price, "조건 미충족", metadata)
