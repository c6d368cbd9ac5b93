"""
롱숏 모멘텀 전략 실행 스크립트 (페이퍼 트레이딩 진입점).

[ 사용법 ]
    # 샘플 분봉 + Mock 브로커로 1분 간격 실행 (Ctrl+C로 종료)
    python run_long_short.py

    # 한 사이클만 실행하고 종료
    python run_long_short.py --once

    # 시세는 Yahoo Finance 1분봉, 주문은 Mock 브로커 (매 주문마다 최신 1분봉 종가로 체결)
    python run_long_short.py --source yahoo --once

    # Alpaca 페이퍼 계좌로 실제 주문 (APCA_API_KEY_ID / APCA_API_SECRET_KEY 필요)
    python run_long_short.py --broker alpaca --source yahoo

[ 구성 ]
    브로커와 데이터 제공자는 여기서 한 번만 만들고 랭커/리밸런서/러너에 주입한다.
"""

import argparse
import time
from datetime import datetime, timedelta
from pathlib import Path

import numpy as np
import pandas as pd

from trading_engine.brokers.alpaca_broker import AlpacaBroker
from trading_engine.brokers.mock_broker import MockBroker, MockDataProvider
from trading_engine.core.broker_api import BrokerAPI
from trading_engine.core.data_provider import DataProvider
from trading_engine.data.market_data import MarketDataManager
from trading_engine.data.yahoo_provider import YahooDataProvider
from trading_engine.live.ranker import MomentumRanker
from trading_engine.live.rebalancer import PortfolioRebalancer
from trading_engine.live.runner import LongShortRunner
from trading_engine.utils.config import Config
from trading_engine.utils.logger import setup_logger


def generate_minute_bars(ticker: str, minutes: int = 30, initial_price: float = 100.0) -> pd.DataFrame:
    """페이퍼 모드용 샘플 1분봉 생성."""
    rng = np.random.default_rng(sum(ord(c) for c in ticker))
    end = datetime.now().replace(second=0, microsecond=0)
    stamps = [end - timedelta(minutes=minutes - 1 - i) for i in range(minutes)]

    closes = initial_price * np.cumprod(1 + rng.normal(0, 0.002, minutes))
    return pd.DataFrame({
        "date": stamps,
        "open": np.round(closes, 2),
        "high": np.round(closes * 1.001, 2),
        "low": np.round(closes * 0.999, 2),
        "close": np.round(closes, 2),
        "volume": rng.integers(1_000, 50_000, minutes),
    })


def build_provider(source: str, universe: list[str]) -> DataProvider:
    if source == "yahoo":
        return YahooDataProvider(tickers=universe)

    provider = MockDataProvider()
    for i, symbol in enumerate(universe):
        provider.load_data(symbol, generate_minute_bars(symbol, initial_price=50.0 + 25 * i))
    return provider


def build_broker(kind: str, market_data: MarketDataManager, cash: float, lookback_minutes: int) -> BrokerAPI:
    if kind == "alpaca":
        return AlpacaBroker()
    return MockBroker(
        initial_cash=cash,
        price_source=lambda symbol: market_data.get_latest_price(symbol, minutes=lookback_minutes),
    )


def main():
    parser = argparse.ArgumentParser(description="롱숏 모멘텀 전략 페이퍼 트레이딩")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "yahoo"], help="시세 소스")
    parser.add_argument("--broker", type=str, default="mock", choices=["mock", "alpaca"], help="주문 브로커")
    parser.add_argument("--cash", type=float, default=100_000, help="Mock 계좌 초기 자금")
    parser.add_argument("--once", action="store_true", help="한 사이클만 실행")
    args = parser.parse_args()

    config_path = Path(args.config)
    config = Config.from_yaml(config_path) if config_path.exists() else Config()
    setup_logger(level=config.log_level, log_dir=config.log_dir)
    live = config.live

    provider = build_provider(args.source, live.universe)
    market_data = MarketDataManager(provider)

    broker = build_broker(args.broker, market_data, args.cash, live.lookback_minutes)
    broker.connect()

    ranker = MomentumRanker(
        market_data,
        live.universe,
        lookback_minutes=live.lookback_minutes,
        max_workers=live.max_workers,
    )
    rebalancer = PortfolioRebalancer(
        broker,
        ranker,
        market_data,
        short_ratio=live.short_ratio,
        max_workers=live.max_workers,
    )
    runner = LongShortRunner(
        broker,
        rebalancer,
        interval_seconds=live.interval_seconds,
        close_buffer_minutes=live.close_buffer_minutes,
    )

    if args.once:
        runner.run_once()
        report = runner.last_report
        if report is not None:
            print(f"\n롱: {report.target.long_symbols} ({report.target.qty_per_long}주/종목)")
            print(f"숏: {report.target.short_symbols} ({report.target.qty_per_short}주/종목)")
            print(f"주문 {len(report.sent_orders)}건")
        print(f"상태: {runner.status}")
        broker.disconnect()
        return

    runner.start()
    try:
        while runner.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n종료 요청 수신")
    finally:
        runner.stop(timeout=10)
        broker.disconnect()


if __name__ == "__main__":
    main()
