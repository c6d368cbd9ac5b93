"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 봉 데이터에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    종목마다 독립된 초기 자금(기본 100,000)으로 실행하며 종목 간 자금 공유는 없다.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        1. 종목별로 run_symbol()을 병렬 실행 (ThreadPoolExecutor)
        2. run_symbol()은 봉을 하나씩 재생
           → 종가를 윈도우에 추가
           → strategy.generate_signal() 호출
           → ENTER_LONG이면 _execute_entry(), EXIT_LONG이면 _execute_exit()
           → 자산 = 현금 + 보유수량 * 종가, 봉별 수익률 기록
        3. metrics.calculate_metrics()로 성과 지표 계산
        4. 데이터가 깨진 종목(DataGapError)은 결과에서 제외하고 나머지는 정상 반환

[ 체결 모델 ]
    진입: 체결가 = 종가 * (1 + slippage), 수수료 = 체결금액 * fee_rate
    청산: 체결가 = 종가 * (1 - slippage), 수수료 = 체결금액 * fee_rate
    진입/청산 모두 불리하게 적용하여 결과를 보수적으로 만든다.

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

import pandas as pd

from trading_engine.backtest.metrics import PerformanceMetrics, calculate_metrics
from trading_engine.core.data_provider import iter_bars
from trading_engine.core.errors import DataGapError
from trading_engine.core.trading_strategy import PositionInfo, SignalType, TradingStrategy
from trading_engine.data.portfolio import Portfolio

logger = logging.getLogger("trading_engine.backtest")


@dataclass(frozen=True)
class EquityPoint:
    date: Any
    equity: float


@dataclass
class BacktestResult:
    """종목 하나의 백테스트 결과."""
    symbol: str
    trades: list
    equity_curve: list[EquityPoint]
    daily_returns: list[float]
    metrics: PerformanceMetrics

    def to_frame(self) -> pd.DataFrame:
        """봉별 자산/수익률 DataFrame (columns: date, equity, daily_return)."""
        return pd.DataFrame({
            "date": [p.date for p in self.equity_curve],
            "equity": [p.equity for p in self.equity_curve],
            "daily_return": self.daily_returns,
        })

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "metrics": self.metrics.to_dict(),
            "trades": [t.to_dict() for t in self.trades],
            "daily_returns": [
                {"date": str(p.date), "return": r}
                for p, r in zip(self.equity_curve, self.daily_returns)
            ],
        }


class BacktestEngine:
    """백테스팅 엔진. run_backtest()로 여러 종목, run_symbol()로 한 종목 실행."""

    def __init__(
        self,
        initial_cash: float = 100_000,
        fee_rate: float = 0.001,          # 매수/매도 수수료율
        slippage_rate: float = 0.001,     # 슬리피지율
        risk_free_rate: float = 0.02,     # 샤프 계산용 연 무위험수익률
        max_workers: int = 4,
    ):
        self.initial_cash = initial_cash
        self.fee_rate = fee_rate
        self.slippage_rate = slippage_rate
        self.risk_free_rate = risk_free_rate
        self.max_workers = max_workers

    def run_backtest(
        self,
        strategy: TradingStrategy,
        data: dict[str, pd.DataFrame],
    ) -> dict[str, BacktestResult]:
        """여러 종목 백테스트 실행.

        Args:
            strategy: 매매 전략 (상태가 없으므로 종목 간 공유)
            data: {symbol: OHLCV DataFrame}

        Returns:
            {symbol: BacktestResult}. 실패한 종목은 포함되지 않는다. 순서는 입력 순서.
        """
        if not data:
            logger.warning("백테스트할 종목이 없습니다.")
            return {}

        completed: dict[str, BacktestResult] = {}
        workers = max(1, min(self.max_workers, len(data)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="backtest") as executor:
            futures = {
                executor.submit(self.run_symbol, strategy, symbol, df): symbol
                for symbol, df in data.items()
            }
            for future in as_completed(futures):
                symbol = futures[future]
                try:
                    completed[symbol] = future.result()
                except DataGapError as e:
                    logger.warning(f"[SKIP] {e}")
                except Exception:
                    logger.exception(f"[SKIP] {symbol}: 백테스트 중 예외 발생")

        results = {symbol: completed[symbol] for symbol in data if symbol in completed}
        logger.info(f"백테스트 완료: {len(results)}/{len(data)} 종목")
        return results

    def run_symbol(
        self,
        strategy: TradingStrategy,
        symbol: str,
        df: pd.DataFrame,
    ) -> BacktestResult:
        """한 종목 봉 단위 재생.

        Raises:
            DataGapError: 데이터가 비었거나, 시간 역전/중복, 종가 결측이 있는 경우
        """
        if df is None or df.empty:
            raise DataGapError(symbol, "봉 데이터 없음")
        missing = {"date", "close"} - set(df.columns)
        if missing:
            raise DataGapError(symbol, f"필수 컬럼 누락: {sorted(missing)}")

        portfolio = Portfolio(symbol, self.initial_cash, self.fee_rate)
        closes: list[float] = []
        equity_curve: list[EquityPoint] = []
        daily_returns: list[float] = []
        prev_equity = self.initial_cash
        prev_ts = None

        for bar in iter_bars(df):
            ts = pd.Timestamp(bar.timestamp)
            close = bar.close
            if prev_ts is not None and ts <= prev_ts:
                raise DataGapError(symbol, f"봉 순서 이상 ({prev_ts} → {ts})")
            if close is None or pd.isna(close) or close <= 0:
                raise DataGapError(symbol, f"{bar.timestamp} 종가 결측/이상 ({close})")
            prev_ts = ts
            close = float(close)

            closes.append(close)
            if len(closes) >= strategy.min_history:
                signal = strategy.generate_signal(closes, PositionInfo(symbol, portfolio.shares))
                if signal.signal_type == SignalType.ENTER_LONG:
                    self._execute_entry(portfolio, close, bar.timestamp, signal.reason)
                elif signal.signal_type == SignalType.EXIT_LONG:
                    self._execute_exit(portfolio, close, bar.timestamp, signal.reason)

            equity = portfolio.equity(close)
            equity_curve.append(EquityPoint(bar.timestamp, equity))
            daily_returns.append((equity - prev_equity) / prev_equity if prev_equity != 0 else 0.0)
            prev_equity = equity

        metrics = calculate_metrics(
            trades=portfolio.trades,
            equity_curve=[p.equity for p in equity_curve],
            daily_returns=daily_returns,
            initial_cash=self.initial_cash,
            risk_free_rate=self.risk_free_rate,
        )
        sharpe = f"{metrics.sharpe_ratio:.2f}" if not math.isnan(metrics.sharpe_ratio) else "N/A"
        logger.info(
            f"{symbol}: {len(df)}봉, 거래 {metrics.total_trades}건, "
            f"수익률 {metrics.total_return_pct:.2f}%, 샤프 {sharpe}"
        )
        return BacktestResult(
            symbol=symbol,
            trades=list(portfolio.trades),
            equity_curve=equity_curve,
            daily_returns=daily_returns,
            metrics=metrics,
        )

    def _execute_entry(self, portfolio: Portfolio, close: float, bar_date: Any, reason: str) -> None:
        """진입. 슬리피지(가격↑) 적용 후 가용 현금 전부 매수."""
        exec_price = close * (1 + self.slippage_rate)  # 매수 시 불리하게
        trade = portfolio.buy_all(exec_price, bar_date)
        if trade is not None:
            logger.debug(f"[{bar_date}] 매수: {portfolio.symbol} {trade.shares}주 @ {exec_price:,.2f} ({reason})")

    def _execute_exit(self, portfolio: Portfolio, close: float, bar_date: Any, reason: str) -> None:
        """청산. 슬리피지(가격↓) 적용 후 전량 매도."""
        exec_price = close * (1 - self.slippage_rate)  # 매도 시 불리하게
        trade = portfolio.sell_all(exec_price, bar_date)
        if trade is not None:
            logger.debug(f"[{bar_date}] 매도: {portfolio.symbol} {trade.shares}주 @ {exec_price:,.2f} ({reason})")

    @staticmethod
    def generate_report(results: dict[str, BacktestResult]) -> dict[str, Any]:
        """종목별 결과를 리포트 dict로 변환."""
        return {"results": [result.to_dict() for result in results.values()]}
