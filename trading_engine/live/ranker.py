"""
모멘텀 랭킹 모듈.

[ 역할 ]
    고정 종목 유니버스를 최근 N분(기본 10분) 1분봉 등락률로 점수화하고 오름차순 정렬.
    하위 1/4 → 숏 후보, 상위 1/4 → 롱 후보.

[ 점수 ]
    score = (마지막 종가 - 첫 종가) / 첫 종가
    봉이 없거나 조회가 실패한 종목은 0점(중립)으로 남기고 랭킹에는 포함한다.
    동점은 유니버스 입력 순서를 유지한다 (안정 정렬).

[ 호출하는 곳 ]
    - live/rebalancer.py::PortfolioRebalancer.rebalance() RANK 단계
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from trading_engine.data.market_data import MarketDataManager

logger = logging.getLogger("trading_engine.live")


@dataclass(frozen=True)
class StockScore:
    symbol: str
    percent_change: float = 0.0


@dataclass(frozen=True)
class RankResult:
    """한 번의 랭킹 결과. 매 사이클 새로 계산되며 다음 사이클로 넘어가지 않는다."""
    scores: list[StockScore]          # 점수 오름차순
    long_symbols: list[str]
    short_symbols: list[str]

    @property
    def quarter_size(self) -> int:
        return quarter_size(len(self.scores))


def quarter_size(universe_size: int) -> int:
    return universe_size // 4


def partition(scores: list[StockScore]) -> tuple[list[str], list[str]]:
    """오름차순 점수 리스트를 (롱 후보, 숏 후보)로 분할."""
    q = quarter_size(len(scores))
    short = [s.symbol for s in scores[:q]]
    long = [s.symbol for s in scores[len(scores) - q:]] if q > 0 else []
    return long, short


def percent_change(closes: list[float]) -> float:
    if not closes or closes[0] == 0:
        return 0.0
    return (closes[-1] - closes[0]) / closes[0]


class MomentumRanker:
    """단기 모멘텀 랭커.

    사용 예:
        ranker = MomentumRanker(MarketDataManager(provider), ["AAPL", "MSFT", ...])
        result = ranker.select()
        result.long_symbols, result.short_symbols
    """

    def __init__(
        self,
        market_data: MarketDataManager,
        universe: list[str],
        lookback_minutes: int = 10,
        max_workers: int = 8,
    ):
        if len(set(universe)) != len(universe):
            raise ValueError(f"유니버스에 중복 종목이 있음: {universe}")
        self.market_data = market_data
        self.universe = list(universe)
        self.lookback_minutes = lookback_minutes
        self.max_workers = max_workers

    def score(self, symbol: str) -> float:
        closes = self.market_data.get_recent_closes(symbol, self.lookback_minutes)
        if not closes:
            logger.info(f"{symbol}: 최근 {self.lookback_minutes}분 봉 없음, 0점 처리")
        return percent_change(closes)

    def rank(self) -> list[StockScore]:
        """유니버스 전체 점수 계산 후 오름차순 정렬."""
        if not self.universe:
            return []

        values: dict[str, float] = {}
        workers = max(1, min(self.max_workers, len(self.universe)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rank") as executor:
            futures = {executor.submit(self.score, symbol): symbol for symbol in self.universe}
            for future in as_completed(futures):
                symbol = futures[future]
                try:
                    values[symbol] = future.result()
                except Exception as e:
                    logger.warning(f"{symbol}: 시세 조회 실패, 0점 처리 ({e})")
                    values[symbol] = 0.0

        scores = [StockScore(symbol, values[symbol]) for symbol in self.universe]
        return sorted(scores, key=lambda s: s.percent_change)

    def select(self) -> RankResult:
        scores = self.rank()
        long, short = partition(scores)
        logger.info(f"롱 후보: {', '.join(long) or '-'} / 숏 후보: {', '.join(short) or '-'}")
        return RankResult(scores=scores, long_symbols=long, short_symbols=short)
