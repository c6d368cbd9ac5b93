from __future__ import annotations

from datetime import datetime, timedelta

import pandas as pd
import pytest

from trading_engine.brokers.mock_broker import MockBroker, MockDataProvider
from trading_engine.data.market_data import MarketDataManager


def daily_frame(closes: list[float], start: str = "2023-01-02") -> pd.DataFrame:
    dates = pd.bdate_range(start=start, periods=len(closes))
    return pd.DataFrame(
        {
            "date": [d.date() for d in dates],
            "open": closes,
            "high": [c * 1.01 for c in closes],
            "low": [c * 0.99 for c in closes],
            "close": closes,
            "volume": [1_000] * len(closes),
        }
    )


def minute_frame(closes: list[float]) -> pd.DataFrame:
    end = datetime(2024, 6, 3, 15, 0)
    stamps = [end - timedelta(minutes=len(closes) - 1 - i) for i in range(len(closes))]
    return pd.DataFrame(
        {
            "date": stamps,
            "open": closes,
            "high": closes,
            "low": closes,
            "close": closes,
            "volume": [100] * len(closes),
        }
    )


def load_scores(provider: MockDataProvider, scores: dict[str, float], last_price: float = 100.0) -> None:
    """마지막 종가가 last_price이고 첫 종가 대비 등락률이 score인 2개 분봉을 종목별로 적재."""
    for symbol, score in scores.items():
        provider.load_data(symbol, minute_frame([last_price / (1 + score), last_price]))


@pytest.fixture
def provider() -> MockDataProvider:
    return MockDataProvider()


@pytest.fixture
def market_data(provider: MockDataProvider) -> MarketDataManager:
    return MarketDataManager(provider)


@pytest.fixture
def broker() -> MockBroker:
    broker = MockBroker(initial_cash=100_000)
    broker.connect()
    return broker
