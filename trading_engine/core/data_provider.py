"""
주가 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV(시가/고가/저가/종가/거래량) 봉 데이터를 제공하는 인터페이스.
    과거 구간 조회(백테스트)와 최근 몇 분간의 분봉 조회(모멘텀 랭킹)를 모두 지원해야 한다.

[ 구현체 ]
    - brokers/mock_broker.py::MockDataProvider  (DataFrame 기반, 테스트/페이퍼용)
    - data/yahoo_provider.py::YahooDataProvider (yfinance)

[ 호출하는 곳 ]
    - data/market_data.py::MarketDataManager가 이 인터페이스를 통해 데이터 조회
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterator

import pandas as pd

# get_ohlcv()가 반환하는 DataFrame 컬럼 순서
OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class Bar:
    """단일 봉(캔들) 데이터. 한 번 만들어지면 변경하지 않는다."""
    timestamp: Any   # 일봉 이상은 date, 분봉은 Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: int


def iter_bars(df: pd.DataFrame) -> Iterator[Bar]:
    """DataFrame 행을 Bar로 변환. open/high/low가 없으면 종가, volume이 없으면 0으로 채운다.

    값 검증은 하지 않는다 (호출하는 쪽 책임).
    """
    for row in df.itertuples(index=False):
        close = row.close
        yield Bar(
            timestamp=row.date,
            open=getattr(row, "open", close),
            high=getattr(row, "high", close),
            low=getattr(row, "low", close),
            close=close,
            volume=getattr(row, "volume", 0),
        )


class DataProvider(ABC):
    """주가 데이터 제공 추상 클래스."""

    @abstractmethod
    def get_ohlcv(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        """OHLCV 데이터 조회.

        Args:
            ticker: 종목 코드
            start_date: 시작일
            end_date: 종료일
            timeframe: 봉 단위 ("1Min", "1Hour", "1Day", "1Week", "1Month")

        Returns:
            DataFrame with columns: [date, open, high, low, close, volume]
        """
        ...

    @abstractmethod
    def get_recent_bars(self, ticker: str, minutes: int) -> pd.DataFrame:
        """최근 N분간 1분봉 조회. 데이터가 없으면 빈 DataFrame."""
        ...

    @abstractmethod
    def get_tickers(self) -> list[str]:
        """조회 가능한 종목 코드 목록."""
        ...
