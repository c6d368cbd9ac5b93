from __future__ import annotations

import math
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from conftest import daily_frame
from trading_engine.backtest.engine import BacktestEngine
from trading_engine.core.errors import DataGapError
from trading_engine.strategies import create_strategy
from trading_engine.strategies.sma_crossover import SMACrossoverStrategy
from trading_engine.utils.config import Config


def crossover_closes() -> list[float]:
    # fast(20) 가 55번째 봉에서 slow(50) 위로, 80번째 봉에서 아래로 교차
    closes = [100.0] * 90
    for i in range(55, 64):
        closes[i] = 110.0
    return closes


@pytest.fixture
def strategy() -> SMACrossoverStrategy:
    return SMACrossoverStrategy({"fast_window": 20, "slow_window": 50})


def test_engineered_crossover_buys_and_sells_once(strategy: SMACrossoverStrategy) -> None:
    frame = daily_frame(crossover_closes())
    result = BacktestEngine(initial_cash=100_000, fee_rate=0.001, slippage_rate=0.001).run_symbol(
        strategy, "XOVER", frame
    )

    buy, sell = result.trades
    assert buy.type == "buy"
    assert buy.date == frame["date"].iloc[55]
    assert buy.price == pytest.approx(110.0 * 1.001)
    assert buy.shares == math.floor(100_000 / (110.0 * 1.001))
    assert buy.fees == pytest.approx(buy.total * 0.001)

    assert sell.type == "sell"
    assert sell.date == frame["date"].iloc[80]
    assert sell.price == pytest.approx(100.0 * 0.999)
    assert sell.shares == buy.shares
    assert sell.fees == pytest.approx(sell.total * 0.001)

    expected_cash = 100_000 - buy.total - buy.fees + sell.total - sell.fees
    assert result.metrics.final_equity == pytest.approx(expected_cash)
    assert result.metrics.total_trades == 2
    assert result.metrics.win_rate == 0.0
    assert 0 < result.metrics.max_drawdown <= 1


def test_entry_spends_all_cash_and_fees_come_on_top(strategy: SMACrossoverStrategy) -> None:
    result = BacktestEngine().run_symbol(strategy, "XOVER", daily_frame(crossover_closes()))
    buy = result.trades[0]
    assert buy.shares == math.floor(100_000 / buy.price)
    assert buy.total <= 100_000
    # 수수료는 floor 수량 위에 따로 붙는다
    entry_equity = result.equity_curve[55].equity
    assert entry_equity == pytest.approx(100_000 - buy.total - buy.fees + buy.shares * 110.0)
    assert min(p.equity for p in result.equity_curve) > 0


def test_rising_series_ends_long_above_baseline(strategy: SMACrossoverStrategy) -> None:
    closes = [100.0 + i for i in range(80)]
    result = BacktestEngine().run_symbol(strategy, "UP", daily_frame(closes))

    assert [t.type for t in result.trades] == ["buy"]
    assert result.metrics.final_equity > 100_000
    assert result.metrics.max_drawdown < 0.01


def test_equity_curve_and_returns_line_up_with_bars(strategy: SMACrossoverStrategy) -> None:
    frame = daily_frame(crossover_closes())
    result = BacktestEngine().run_symbol(strategy, "XOVER", frame)

    assert len(result.equity_curve) == len(frame)
    assert len(result.daily_returns) == len(frame)
    assert result.daily_returns[0] == 0.0

    table = result.to_frame()
    assert list(table.columns) == ["date", "equity", "daily_return"]


def test_flat_series_has_no_sharpe(strategy: SMACrossoverStrategy) -> None:
    result = BacktestEngine().run_symbol(strategy, "FLAT", daily_frame([100.0] * 60))
    assert result.metrics.total_trades == 0
    assert math.isnan(result.metrics.sharpe_ratio)


def test_non_monotonic_dates_raise_data_gap(strategy: SMACrossoverStrategy) -> None:
    frame = daily_frame([100.0] * 60)
    frame.loc[10, "date"] = frame.loc[5, "date"]
    with pytest.raises(DataGapError):
        BacktestEngine().run_symbol(strategy, "BAD", frame)


def test_missing_close_raises_data_gap(strategy: SMACrossoverStrategy) -> None:
    frame = daily_frame([100.0] * 60)
    frame.loc[30, "close"] = float("nan")
    with pytest.raises(DataGapError) as exc_info:
        BacktestEngine().run_symbol(strategy, "NAN", frame)
    assert exc_info.value.symbol == "NAN"


def test_empty_frame_raises_data_gap(strategy: SMACrossoverStrategy) -> None:
    with pytest.raises(DataGapError):
        BacktestEngine().run_symbol(strategy, "EMPTY", pd.DataFrame(columns=["date", "close"]))


def test_batch_drops_broken_symbol_and_keeps_order(strategy: SMACrossoverStrategy) -> None:
    broken = daily_frame([100.0] * 60)
    broken.loc[20, "close"] = float("nan")
    data = {
        "XOVER": daily_frame(crossover_closes()),
        "BROKEN": broken,
        "UP": daily_frame([100.0 + i for i in range(80)]),
    }

    results = BacktestEngine(max_workers=3).run_backtest(strategy, data)

    assert list(results) == ["XOVER", "UP"]
    assert results["XOVER"].metrics.total_trades == 2


def test_report_contains_metrics_and_trades(strategy: SMACrossoverStrategy) -> None:
    results = BacktestEngine().run_backtest(strategy, {"XOVER": daily_frame(crossover_closes())})
    report = BacktestEngine.generate_report(results)

    entry = report["results"][0]
    assert entry["symbol"] == "XOVER"
    assert entry["metrics"]["total_trades"] == 2
    assert [t["type"] for t in entry["trades"]] == ["buy", "sell"]


def test_shipped_config_toggles_entry_rule_on_rising_series() -> None:
    config = Config.from_yaml(Path(__file__).resolve().parent.parent / "config.yaml")
    assert config.strategy.params["require_crossover"] is False

    closes = list(np.linspace(100.0, 160.0, 60))
    engine = BacktestEngine(initial_cash=config.backtest.initial_cash)

    level = create_strategy(config.strategy.name, params=config.strategy.params)
    trades = engine.run_symbol(level, "RISE", daily_frame(closes)).trades
    assert [t.type for t in trades] == ["buy"]

    crossover = create_strategy(config.strategy.name, params={**config.strategy.params, "require_crossover": True})
    assert engine.run_symbol(crossover, "RISE", daily_frame(closes)).trades == []
