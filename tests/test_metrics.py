from __future__ import annotations

import math

import numpy as np
import pytest

from trading_engine.backtest.metrics import (
    PerformanceMetrics,
    calculate_max_drawdown,
    calculate_metrics,
    calculate_sharpe_ratio,
    calculate_win_rate,
    daily_risk_free,
)
from trading_engine.data.portfolio import Portfolio, PositionState, Trade


def test_max_drawdown_from_running_peak() -> None:
    assert calculate_max_drawdown([100, 120, 90, 130, 117]) == pytest.approx(0.25)


def test_max_drawdown_is_zero_for_monotonic_curve() -> None:
    assert calculate_max_drawdown([100, 101, 105, 110]) == 0.0
    assert calculate_max_drawdown([]) == 0.0


def test_max_drawdown_stays_within_unit_interval() -> None:
    rng = np.random.default_rng(7)
    curve = 100_000 * np.cumprod(1 + rng.normal(0, 0.03, 500))
    dd = calculate_max_drawdown(curve)
    assert 0.0 <= dd <= 1.0


def test_daily_risk_free_compounds_to_annual_rate() -> None:
    assert (1 + daily_risk_free(0.02)) ** 252 == pytest.approx(1.02)


def test_sharpe_matches_population_std() -> None:
    returns = [0.01, -0.005, 0.002, 0.004, -0.001]
    excess = np.array(returns) - daily_risk_free(0.02)
    expected = excess.mean() / excess.std() * math.sqrt(252)
    assert calculate_sharpe_ratio(returns, 0.02) == pytest.approx(expected)


def test_sharpe_is_nan_without_variance() -> None:
    assert math.isnan(calculate_sharpe_ratio([]))
    assert math.isnan(calculate_sharpe_ratio([0.001] * 30))
    assert math.isnan(calculate_sharpe_ratio([0.0]))


def test_win_rate_uses_entry_price_baseline() -> None:
    trades = [
        Trade("d1", "AAA", "buy", 10, 100.0, 1_000.0, 1.0),
        Trade("d2", "AAA", "sell", 10, 110.0, 1_100.0, 1.1, entry_price=100.0),
        Trade("d3", "AAA", "buy", 10, 100.0, 1_000.0, 1.0),
        Trade("d4", "AAA", "sell", 10, 95.0, 950.0, 0.95, entry_price=100.0),
    ]
    assert calculate_win_rate(trades) == pytest.approx(0.5)
    assert calculate_win_rate(trades[:1]) == 0.0


def test_calculate_metrics_counts_every_trade() -> None:
    portfolio = Portfolio("AAA", 10_000, fee_rate=0.001)
    portfolio.buy_all(100.0, "d1")
    portfolio.sell_all(105.0, "d2")

    metrics = calculate_metrics(
        trades=portfolio.trades,
        equity_curve=[10_000, portfolio.cash],
        daily_returns=[0.0, (portfolio.cash - 10_000) / 10_000],
        initial_cash=10_000,
    )
    assert metrics.total_trades == 2
    assert metrics.win_rate == 1.0
    assert metrics.total_return_pct == pytest.approx((portfolio.cash - 10_000) / 100)


def test_summary_prints_na_for_missing_sharpe() -> None:
    text = PerformanceMetrics(final_equity=100_000).summary()
    assert "N/A" in text
    assert PerformanceMetrics(max_drawdown=0.125).max_drawdown_pct == pytest.approx(12.5)


def test_portfolio_buy_uses_floor_of_cash_and_sell_requires_position() -> None:
    portfolio = Portfolio("AAA", 1_000, fee_rate=0.01)
    assert portfolio.sell_all(10.0, "d0") is None

    trade = portfolio.buy_all(10.0, "d1")
    assert trade.shares == 100
    assert trade.fees == pytest.approx(10.0)
    assert portfolio.cash == pytest.approx(-10.0)
    assert portfolio.position.side == PositionState.LONG
    assert portfolio.buy_all(10.0, "d2") is None

    sell = portfolio.sell_all(10.0, "d3")
    assert sell.entry_price == 10.0
    assert portfolio.position.side == PositionState.FLAT
