"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    한 종목 백테스트 결과(자산 곡선 + 일별 수익률 + 체결 내역)를 받아 성과 지표를 계산.
    calculate_metrics() 함수가 핵심. 결과는 불변 객체이며 실행이 끝난 뒤 한 번에 계산된다.

[ 계산하는 지표 ]
    - 최종 자산 / 총 수익률
    - MDD (최대 낙폭, 0~1 비율)
    - 샤프 비율 (연환산, 무위험수익률 연 2%)
    - 승률 (매도 체결 중 수익 청산 비율)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_symbol() 완료 시 호출
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Sequence

import numpy as np

from trading_engine.data.portfolio import Trade

TRADING_DAYS_PER_YEAR = 252
DEFAULT_RISK_FREE_RATE = 0.02


@dataclass(frozen=True)
class PerformanceMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능.

    sharpe_ratio가 NaN이면 "샤프 계산에 필요한 데이터 부족"을 뜻한다 (0과 다름).
    """
    final_equity: float = 0.0
    total_return_pct: float = 0.0     # 총 수익률 (%)
    total_trades: int = 0             # 매수 + 매도 체결 수
    max_drawdown: float = 0.0         # 최대 낙폭 (0~1 비율)
    sharpe_ratio: float = math.nan
    win_rate: float = 0.0             # 승률 (0~1 비율)

    @property
    def max_drawdown_pct(self) -> float:
        return self.max_drawdown * 100

    @property
    def has_sharpe(self) -> bool:
        return not math.isnan(self.sharpe_ratio)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        sharpe = f"{self.sharpe_ratio:>10.2f}" if self.has_sharpe else f"{'N/A':>10}"
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"최종 자산:       {self.final_equity:>10,.2f}",
            f"총 수익률:       {self.total_return_pct:>10.2f}%",
            f"샤프 비율:       {sharpe}",
            f"최대 낙폭(MDD):  {self.max_drawdown_pct:>10.2f}%",
            "-" * 50,
            f"총 거래 횟수:    {self.total_trades:>10d}",
            f"승률:            {self.win_rate * 100:>10.2f}%",
            "=" * 50,
        ]
        return "\n".join(lines)


def calculate_max_drawdown(equity_curve: Sequence[float]) -> float:
    """고점 대비 최대 하락 비율. 고점은 첫 자산값에서 시작한다."""
    if len(equity_curve) == 0:
        return 0.0

    peak = equity_curve[0]
    max_dd = 0.0
    for value in equity_curve:
        if value > peak:
            peak = value
        if peak <= 0:
            continue
        dd = (peak - value) / peak
        if dd > max_dd:
            max_dd = dd
    return max_dd


def daily_risk_free(annual_rate: float = DEFAULT_RISK_FREE_RATE) -> float:
    """연 무위험수익률을 일 단위 복리로 환산."""
    return (1 + annual_rate) ** (1 / TRADING_DAYS_PER_YEAR) - 1


def calculate_sharpe_ratio(
    daily_returns: Sequence[float],
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> float:
    """연환산 샤프 비율 = mean(초과수익) / std(초과수익) * sqrt(252).

    표준편차가 0이면(수익률이 일정하거나 한 개뿐이면) NaN을 반환한다.
    """
    if len(daily_returns) == 0:
        return math.nan

    excess = np.asarray(daily_returns, dtype=float) - daily_risk_free(risk_free_rate)
    # 값이 전부 같으면 부동소수 오차와 무관하게 분산 0으로 본다
    if np.ptp(excess) == 0:
        return math.nan
    std = float(np.std(excess))
    if std == 0 or not np.isfinite(std):
        return math.nan
    return float(np.mean(excess) / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def calculate_win_rate(trades: Sequence[Trade]) -> float:
    """매도 체결 중 매도 금액이 진입가 * 수량을 넘는 비율.

    진입가는 대응 매수 체결가(Trade.entry_price)를 기준으로 한다.
    """
    sells = [t for t in trades if t.type == "sell"]
    if not sells:
        return 0.0
    winners = [
        t for t in sells
        if t.entry_price is not None and t.total > t.entry_price * t.shares
    ]
    return len(winners) / len(sells)


def calculate_metrics(
    trades: Sequence[Trade],
    equity_curve: Sequence[float],
    daily_returns: Sequence[float],
    initial_cash: float,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE,
) -> PerformanceMetrics:
    """성과 지표 계산. engine.py에서 종목별 백테스트 완료 후 호출됨.

    Args:
        trades: 체결 내역 (매수+매도 전체)
        equity_curve: 봉별 총 자산 (현금 + 보유 평가)
        daily_returns: 봉별 수익률
        initial_cash: 초기 자금
        risk_free_rate: 연 무위험수익률
    """
    final_equity = float(equity_curve[-1]) if len(equity_curve) else float(initial_cash)
    total_return = (final_equity - initial_cash) / initial_cash * 100 if initial_cash else 0.0

    return PerformanceMetrics(
        final_equity=final_equity,
        total_return_pct=total_return,
        total_trades=len(trades),
        max_drawdown=calculate_max_drawdown(equity_curve),
        sharpe_ratio=calculate_sharpe_ratio(daily_returns, risk_free_rate),
        win_rate=calculate_win_rate(trades),
    )
