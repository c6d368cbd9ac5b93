"""
Yahoo Finance 기반 DataProvider 구현.

[ 역할 ]
    yfinance로 일봉/분봉을 조회하여 엔진 표준 OHLCV DataFrame으로 변환.
    네트워크 오류 시 max_retries만큼 재시도한다.

[ 호출하는 곳 ]
    - run_backtest.py (--source yahoo)
    - run_long_short.py (--source yahoo, 분봉 랭킹)
"""

import logging
import time
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

import pandas as pd
import yfinance as yf

from trading_engine.core.data_provider import OHLCV_COLUMNS, DataProvider

logger = logging.getLogger("trading_engine.data")

# 엔진 timeframe 이름 → yfinance interval
TIMEFRAME_INTERVALS = {
    "1Min": "1m",
    "1Hour": "1h",
    "4Hour": "1h",
    "1Day": "1d",
    "1Week": "1wk",
    "1Month": "1mo",
}


# yfinance에 없는 봉 단위는 상위 interval로 받아 다시 묶는다
RESAMPLE_RULES = {
    "4Hour": "4h",
}


def _empty_frame() -> pd.DataFrame:
    return pd.DataFrame(columns=OHLCV_COLUMNS)


def normalize_history(df: pd.DataFrame, intraday: bool) -> pd.DataFrame:
    """yfinance history() 결과를 [date, open, high, low, close, volume]로 변환."""
    if df is None or df.empty:
        return _empty_frame()

    df = df.reset_index()
    time_column = "Datetime" if "Datetime" in df.columns else "Date"
    df = df.rename(columns={
        time_column: "date",
        "Open": "open",
        "High": "high",
        "Low": "low",
        "Close": "close",
        "Volume": "volume",
    })
    df = df[OHLCV_COLUMNS].copy()

    # 일봉 이상은 datetime.date로, 분봉은 timestamp 유지
    if not intraday and pd.api.types.is_datetime64_any_dtype(df["date"]):
        df["date"] = df["date"].dt.date
    return df


def resample_bars(df: pd.DataFrame, rule: str) -> pd.DataFrame:
    """OHLCV 봉을 더 큰 봉 단위로 묶음 (예: 1시간봉 → 4시간봉). 거래 없는 구간은 제외."""
    if df.empty:
        return df
    index = pd.DatetimeIndex(pd.to_datetime(df["date"]), name="date")
    frame = df.drop(columns="date").set_index(index)
    resampled = frame.resample(rule).agg({
        "open": "first",
        "high": "max",
        "low": "min",
        "close": "last",
        "volume": "sum",
    })
    resampled = resampled.dropna(subset=["close"]).reset_index()
    return resampled[OHLCV_COLUMNS]


class YahooDataProvider(DataProvider):
    """yfinance 데이터 제공자.

    사용 예:
        provider = YahooDataProvider(tickers=["AAPL", "MSFT"])
        df = provider.get_ohlcv("AAPL", date(2023, 1, 1), date(2023, 12, 31))
    """

    def __init__(
        self,
        tickers: Optional[list[str]] = None,
        max_retries: int = 3,
        retry_delay: int = 5,
    ):
        self.tickers = list(tickers or [])
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _with_retry(self, label: str, fetch: Callable[[], pd.DataFrame]) -> pd.DataFrame:
        for attempt in range(self.max_retries):
            try:
                return fetch()
            except Exception as e:
                logger.error(f"Error fetching {label} (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    logger.info(f"Retrying in {self.retry_delay} seconds...")
                    time.sleep(self.retry_delay)
                else:
                    raise
        return _empty_frame()

    def get_ohlcv(
        self,
        ticker: str,
        start_date: date,
        end_date: date,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        if timeframe not in TIMEFRAME_INTERVALS:
            raise ValueError(f"지원하지 않는 timeframe: {timeframe} (가능: {list(TIMEFRAME_INTERVALS)})")
        interval = TIMEFRAME_INTERVALS[timeframe]

        def fetch() -> pd.DataFrame:
            history = yf.Ticker(ticker).history(
                start=start_date,
                end=end_date + timedelta(days=1),  # end_date 포함
                interval=interval,
                auto_adjust=True,
                actions=False,
            )
            df = normalize_history(history, intraday=interval in ("1m", "1h"))
            if timeframe in RESAMPLE_RULES:
                df = resample_bars(df, RESAMPLE_RULES[timeframe])
            return df

        df = self._with_retry(f"{ticker} {start_date}~{end_date} {timeframe}", fetch)
        if df.empty:
            logger.warning(f"No data found for {ticker}")
        else:
            logger.info(f"Fetched {len(df)} rows for {ticker}")
        return df

    def get_recent_bars(self, ticker: str, minutes: int) -> pd.DataFrame:
        def fetch() -> pd.DataFrame:
            history = yf.Ticker(ticker).history(period="1d", interval="1m", actions=False)
            return normalize_history(history, intraday=True)

        df = self._with_retry(f"{ticker} last {minutes}m", fetch)
        if df.empty:
            return df
        cutoff = pd.Timestamp(datetime.now(timezone.utc) - timedelta(minutes=minutes))
        stamps = pd.to_datetime(df["date"], utc=True)
        return df[stamps >= cutoff].reset_index(drop=True)

    def get_tickers(self) -> list[str]:
        return list(self.tickers)
