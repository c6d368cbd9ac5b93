"""
시장 데이터 관리 모듈.

[ 역할 ]
    DataProvider를 감싸서 캐싱 + 검증 + 편의 메서드 제공.
    - 과거 구간 봉 조회 (백테스트, 캐시 사용)
    - 최근 N분 분봉 조회 (모멘텀 랭킹, 캐시 미사용)
    - 최근 가격 조회 (리밸런싱 사이징)

[ 의존성 ]
    - core/data_provider.py::DataProvider (데이터 소스 추상화)

[ 호출하는 곳 ]
    - run_backtest.py에서 종목별 과거 데이터 로드
    - live/ranker.py, live/rebalancer.py에서 분봉/현재가 조회
"""

import logging
from datetime import date

import pandas as pd

from trading_engine.core.data_provider import OHLCV_COLUMNS, DataProvider
from trading_engine.core.errors import DataGapError

logger = logging.getLogger("trading_engine.data")


def validate_bars(df: pd.DataFrame, symbol: str) -> pd.DataFrame:
    """봉 데이터 검증.

    필수 컬럼 누락, 종가 결측, 시간 중복/역전이 있으면 DataGapError.
    통과하면 컬럼 순서를 맞춘 복사본을 반환한다.
    """
    if df is None or df.empty:
        raise DataGapError(symbol, "봉 데이터 없음")

    missing = set(OHLCV_COLUMNS) - set(df.columns)
    if missing:
        raise DataGapError(symbol, f"필수 컬럼 누락: {sorted(missing)}")

    null_close = int(df["close"].isnull().sum())
    if null_close:
        raise DataGapError(symbol, f"종가 결측 {null_close}건")

    timestamps = pd.to_datetime(df["date"])
    if not timestamps.is_monotonic_increasing or timestamps.duplicated().any():
        raise DataGapError(symbol, "봉 시간 순서 이상 (역전 또는 중복)")

    if (df["high"] < df["low"]).any():
        invalid_count = int((df["high"] < df["low"]).sum())
        logger.warning(f"{symbol}: high < low 인 봉 {invalid_count}건")

    return df[OHLCV_COLUMNS].reset_index(drop=True)


class MarketDataManager:
    """DataProvider 위에 캐싱/검증 레이어를 추가한 매니저.

    사용 예:
        manager = MarketDataManager(YahooDataProvider())
        df = manager.get_price_series("AAPL", start, end, "1Day")
    """

    def __init__(self, data_provider: DataProvider):
        self.provider = data_provider
        self._cache: dict[str, pd.DataFrame] = {}  # "ticker_start_end_timeframe" → DataFrame

    def get_market_data(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        timeframe: str = "1Day",
        use_cache: bool = True,
    ) -> pd.DataFrame:
        """시장 데이터 조회 (캐싱 지원). 검증하지 않은 원본."""
        cache_key = f"{ticker}_{start_date}_{end_date}_{timeframe}"

        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        df = self.provider.get_ohlcv(ticker, start_date, end_date, timeframe)
        if use_cache:
            self._cache[cache_key] = df
        return df

    def get_price_series(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        """검증된 봉 시리즈. 문제가 있으면 DataGapError."""
        df = self.get_market_data(ticker, start_date, end_date, timeframe)
        return validate_bars(df, ticker)

    def load_universe(
        self,
        tickers: list[str],
        start_date: date,
        end_date: date,
        timeframe: str = "1Day",
    ) -> dict[str, pd.DataFrame]:
        """여러 종목 로드. 실패한 종목은 로그를 남기고 제외."""
        data: dict[str, pd.DataFrame] = {}
        for ticker in tickers:
            try:
                data[ticker] = self.get_price_series(ticker, start_date, end_date, timeframe)
            except DataGapError as e:
                logger.warning(f"[SKIP] {e}")
        return data

    def get_recent_closes(self, ticker: str, minutes: int) -> list[float]:
        """최근 N분간 1분봉 종가 (오래된 것부터). 없으면 빈 리스트."""
        df = self.provider.get_recent_bars(ticker, minutes)
        if df is None or df.empty:
            return []
        return [float(c) for c in df["close"].dropna()]

    def get_latest_price(self, ticker: str, minutes: int = 1) -> float:
        """최근 가격. 최근 N분 동안 봉이 없으면 0.0."""
        closes = self.get_recent_closes(ticker, minutes)
        return closes[-1] if closes else 0.0

    def clear_cache(self) -> None:
        """캐시 초기화."""
        self._cache.clear()
