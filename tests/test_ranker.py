from __future__ import annotations

import pytest

from conftest import load_scores
from trading_engine.brokers.mock_broker import MockDataProvider
from trading_engine.data.market_data import MarketDataManager
from trading_engine.live.ranker import MomentumRanker, StockScore, partition, percent_change, quarter_size

SCORES = {f"S{i:02d}": round(0.10 - 0.02 * i, 2) for i in range(10)}


def test_ten_symbols_pick_two_longs_and_two_shorts(provider: MockDataProvider, market_data: MarketDataManager) -> None:
    load_scores(provider, SCORES)
    ranker = MomentumRanker(market_data, list(SCORES), lookback_minutes=10)

    result = ranker.select()

    assert result.quarter_size == 2
    assert set(result.long_symbols) == {"S00", "S01"}
    assert set(result.short_symbols) == {"S08", "S09"}
    assert [s.percent_change for s in result.scores] == sorted(s.percent_change for s in result.scores)


@pytest.mark.parametrize("n", [0, 1, 3, 4, 7, 10, 13])
def test_partition_sizes_are_floor_quarter_and_disjoint(n: int) -> None:
    scores = [StockScore(f"S{i}", i / 100) for i in range(n)]
    long, short = partition(scores)

    assert len(long) == len(short) == quarter_size(n) == n // 4
    assert not set(long) & set(short)


def test_fetch_failure_scores_neutral_without_affecting_others(
    provider: MockDataProvider, market_data: MarketDataManager
) -> None:
    scores = {"UP": 0.05, "DOWN": -0.05, "MID1": 0.01, "MID2": -0.01}
    load_scores(provider, scores)
    provider.set_error("MID1", ConnectionError("timeout"))

    result = MomentumRanker(market_data, list(scores)).select()

    by_symbol = {s.symbol: s.percent_change for s in result.scores}
    assert by_symbol["MID1"] == 0.0
    assert by_symbol["UP"] == pytest.approx(0.05)
    assert result.long_symbols == ["UP"]
    assert result.short_symbols == ["DOWN"]


def test_symbol_without_bars_stays_in_ranking_as_neutral(
    provider: MockDataProvider, market_data: MarketDataManager
) -> None:
    load_scores(provider, {"A": 0.02, "B": -0.02, "C": 0.01})
    ranker = MomentumRanker(market_data, ["A", "B", "C", "EMPTY"])

    scores = ranker.rank()

    assert len(scores) == 4
    assert {s.symbol: s.percent_change for s in scores}["EMPTY"] == 0.0


def test_ties_keep_universe_order(provider: MockDataProvider, market_data: MarketDataManager) -> None:
    universe = ["Z", "Y", "X", "W"]
    ranker = MomentumRanker(market_data, universe)
    assert [s.symbol for s in ranker.rank()] == universe


def test_duplicate_universe_is_rejected(market_data: MarketDataManager) -> None:
    with pytest.raises(ValueError):
        MomentumRanker(market_data, ["AAPL", "AAPL"])


def test_percent_change_edge_cases() -> None:
    assert percent_change([]) == 0.0
    assert percent_change([0.0, 5.0]) == 0.0
    assert percent_change([100.0, 110.0]) == pytest.approx(0.10)
