"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml 사용, 샘플 데이터)
    python run_backtest.py

    # Yahoo Finance 데이터 사용
    python run_backtest.py --source yahoo --symbols AAPL MSFT NVDA

    # 봉 단위 지정 (1Day / 1Hour / 4Hour / 1Week / 1Month 또는 H4 / DAILY / MONTHLY)
    python run_backtest.py --timeframe MONTHLY

    # 파라미터 오버라이드
    python run_backtest.py -p fast_window=10 -p slow_window=30 -p require_crossover=true

    # 등록된 전략 목록 확인
    python run_backtest.py --list
"""

import argparse
import json
import math
from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd

from trading_engine.backtest.engine import BacktestEngine, BacktestResult
from trading_engine.data.market_data import MarketDataManager
from trading_engine.data.yahoo_provider import YahooDataProvider
from trading_engine.strategies import create_strategy, list_strategies
from trading_engine.utils.config import Config, parse_param
from trading_engine.utils.logger import setup_logger

DEFAULT_SYMBOLS = ["AAPL", "MSFT", "NVDA"]


def generate_sample_data(
    ticker: str,
    start_date: date,
    end_date: date,
    initial_price: float = 150.0,
    volatility: float = 0.02,
) -> pd.DataFrame:
    """백테스트용 샘플 일봉 데이터 생성. 종목별로 시드가 고정된다."""
    rng = np.random.default_rng(sum(ord(c) for c in ticker))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = rng.normal(0.0003, volatility, n)
    closes = initial_price * np.cumprod(1 + returns)

    return pd.DataFrame({
        "date": [d.date() for d in dates],
        "open": np.round(closes * (1 + rng.normal(0, 0.005, n)), 2),
        "high": np.round(closes * (1 + np.abs(rng.normal(0, 0.01, n))), 2),
        "low": np.round(closes * (1 - np.abs(rng.normal(0, 0.01, n))), 2),
        "close": np.round(closes, 2),
        "volume": rng.lognormal(14, 1, n).astype(int),
    })


def load_data(config: Config, source: str, symbols: list[str]) -> dict[str, pd.DataFrame]:
    """데이터 소스에서 OHLCV 데이터 로드. 실패한 종목은 제외된다."""
    start = date.fromisoformat(config.backtest.start_date)
    end = date.fromisoformat(config.backtest.end_date)
    timeframe = config.backtest.resolved_timeframe()

    if source == "sample":
        print("샘플 데이터 생성 중...")
        data = {}
        for i, symbol in enumerate(symbols):
            data[symbol] = generate_sample_data(symbol, start, end, initial_price=100.0 + 50 * i)
            print(f"  {symbol}: {len(data[symbol])}봉")
        return data

    print(f"Yahoo Finance에서 데이터 조회 중... ({timeframe})")
    manager = MarketDataManager(YahooDataProvider(tickers=symbols))
    data = manager.load_universe(symbols, start, end, timeframe)
    for symbol in symbols:
        if symbol in data:
            print(f"  {symbol}: {len(data[symbol])}봉 로드")
        else:
            print(f"  [SKIP] {symbol}: 데이터 없음")
    return data


def print_single_result(result: BacktestResult) -> None:
    """단일 종목 결과 출력."""
    print(f"\n[종목: {result.symbol}]")
    print(result.metrics.summary())

    buys = [t for t in result.trades if t.type == "buy"]
    sells = [t for t in result.trades if t.type == "sell"]
    print(f"  매수: {len(buys)}회 / 매도: {len(sells)}회")

    if result.trades:
        print("\n최근 체결 (최대 5건):")
        for t in result.trades[-5:]:
            print(f"  [{t.date}] {t.type:<4} {t.shares}주 @ {t.price:,.2f} (금액 {t.total:,.2f}, 수수료 {t.fees:,.2f})")


def print_comparison(results: dict[str, BacktestResult], config: Config) -> None:
    """종목별 결과 비교 표 출력."""
    period = f"{config.backtest.start_date} ~ {config.backtest.end_date}"
    names = list(results.keys())
    col_width = max(12, max(len(n) for n in names) + 2)
    width = 20 + col_width * len(names)

    print(f"\n{'=' * width}")
    print(f"종목 비교 ({config.strategy.name}, {period})")
    print(f"{'=' * width}")

    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    def sharpe(m) -> str:
        return "N/A" if math.isnan(m.sharpe_ratio) else f"{m.sharpe_ratio:.2f}"

    rows = [
        ("최종 자산", lambda m: f"{m.final_equity:,.0f}"),
        ("총 수익률", lambda m: f"{m.total_return_pct:.2f}%"),
        ("샤프 비율", sharpe),
        ("최대 낙폭(MDD)", lambda m: f"{m.max_drawdown_pct:.2f}%"),
        ("총 거래 횟수", lambda m: f"{m.total_trades}"),
        ("승률", lambda m: f"{m.win_rate * 100:.1f}%"),
    ]
    for label, fmt in rows:
        print(f"{label:>20}" + "".join(f"{fmt(results[n].metrics):>{col_width}}" for n in names))

    print(f"{'=' * width}")


def main():
    parser = argparse.ArgumentParser(description="SMA 교차 전략 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 이름 (config.yaml 대신 지정)")
    parser.add_argument("--symbols", nargs="+", default=None, help="종목 목록")
    parser.add_argument("--timeframe", type=str, default=None, help="봉 단위 (1Day, 1Hour, MONTHLY ...)")
    parser.add_argument("-p", "--param", action="append", default=[], help="파라미터 오버라이드 (예: -p slow_window=60)")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "yahoo"], help="데이터 소스")
    parser.add_argument("--report", type=str, default=None, help="결과 JSON 저장 경로")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args()

    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            print(f"  - {name}")
        return

    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용")
        config = Config()

    setup_logger(level=config.log_level, log_dir=config.log_dir)

    if args.strategy:
        config.strategy.name = args.strategy
    if args.timeframe:
        config.backtest.timeframe = args.timeframe
    strategy_params = dict(config.strategy.params)
    for p in args.param:
        key, value = parse_param(p)
        strategy_params[key] = value

    symbols = args.symbols or config.strategy.tickers or DEFAULT_SYMBOLS
    data = load_data(config, args.source, symbols)
    if not data:
        print("\n오류: 백테스트할 데이터가 없습니다.")
        return

    strategy = create_strategy(config.strategy.name, params=strategy_params)
    engine = BacktestEngine(
        initial_cash=config.backtest.initial_cash,
        fee_rate=config.backtest.fee_rate,
        slippage_rate=config.backtest.slippage_rate,
        risk_free_rate=config.backtest.risk_free_rate,
        max_workers=config.backtest.max_workers,
    )

    print(f"\n전략: {strategy.name} {strategy.params}")
    results = engine.run_backtest(strategy, data)
    if not results:
        print("\n오류: 모든 종목의 백테스트가 실패했습니다.")
        return

    for result in results.values():
        print_single_result(result)
    if len(results) > 1:
        print_comparison(results, config)

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(
            json.dumps(engine.generate_report(results), ensure_ascii=False, indent=2, default=str),
            encoding="utf-8",
        )
        print(f"\n리포트 저장: {report_path}")


if __name__ == "__main__":
    main()
