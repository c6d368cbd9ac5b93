"""
롱숏 포트폴리오 리밸런싱 모듈.

[ 역할 ]
    모멘텀 랭킹 결과(롱/숏 후보)와 브로커 측 실제 포지션을 맞추기 위한 최소 주문을 낸다.
    한 번의 rebalance() 호출이 한 사이클이며, 사이클 상태(블랙리스트, 롱/숏 목록)는
    사이클이 끝나면 버려진다. 다음 사이클로 이어지는 것은 브로커 측 포지션뿐이다.

[ 사이클 단계 ] (순차 진행, 단계 내부의 종목별 작업은 병렬)
    RANK        → ranker.select()로 롱/숏 후보 선정
    SIZE        → 숏 금액 = 평가금 * 0.30, 롱 금액 = 숏 금액 + 평가금 (130/30 구조)
                  종목당 수량 = floor(금액 / 후보 가격 합)
    RECONCILE   → 미체결 주문 전부 취소 후 보유 포지션 정리
                  - 후보에 없는 종목: 전량 청산
                  - 반대 방향 보유: 청산 (이후 BATCH_ORDER에서 새로 진입)
                  - 같은 방향 보유: 목표 수량과의 차이만 주문, 블랙리스트 등록
    BATCH_ORDER → 블랙리스트에 없는 후보 종목에 목표 수량 주문
    RECOVER     → 한쪽에서 일부 주문만 실패하면, 성공 종목 가격 합으로 수량을 다시 계산해
                  실패 종목 몫의 자금을 성공 종목에 나눠 추가 주문
    DONE

[ 오류 처리 ]
    - 가격 합이 0이거나 평가금이 없으면 해당 방향만 사이징/주문 생략 (SizingError 로그)
    - 주문 실패는 bool 결과로만 흡수되어 RECOVER 입력이 된다
    - 수량 <= 0 주문은 보내지 않고 성공으로 간주 (no-op 로그)
    - 브로커 조회(평가금, 포지션, 미체결) 실패는 GatewayUnavailableError로 사이클 전체 실패

[ 호출하는 곳 ]
    - live/runner.py::LongShortRunner 주기 실행
"""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from trading_engine.core.broker_api import (
    BrokerAPI,
    LivePosition,
    OrderIntent,
    OrderSide,
    PositionSide,
)
from trading_engine.core.errors import GatewayUnavailableError, OrderRejection, SizingError
from trading_engine.data.market_data import MarketDataManager
from trading_engine.live.ranker import MomentumRanker, RankResult

logger = logging.getLogger("trading_engine.live")

LONG = "long"
SHORT = "short"


class RebalanceState(Enum):
    RANK = "rank"
    SIZE = "size"
    RECONCILE = "reconcile"
    BATCH_ORDER = "batch_order"
    RECOVER = "recover"
    DONE = "done"


@dataclass
class TargetPortfolio:
    """한 사이클의 목표 상태. qty가 None이면 해당 방향 사이징 실패."""
    long_symbols: list[str]
    short_symbols: list[str]
    qty_per_long: Optional[int]
    qty_per_short: Optional[int]
    long_notional: float = 0.0
    short_notional: float = 0.0
    prices: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class OrderRecord:
    """사이클 중 처리된 주문 한 건. sent=False면 수량 <= 0 no-op."""
    phase: RebalanceState
    symbol: str
    qty: int
    side: OrderSide
    sent: bool
    ok: bool
    message: str = ""


@dataclass
class BatchOutcome:
    executed: list[str] = field(default_factory=list)
    incomplete: list[str] = field(default_factory=list)


@dataclass
class RebalanceReport:
    """rebalance() 결과 요약."""
    target: Optional[TargetPortfolio] = None
    blacklist: set[str] = field(default_factory=set)
    long_batch: BatchOutcome = field(default_factory=BatchOutcome)
    short_batch: BatchOutcome = field(default_factory=BatchOutcome)
    adjusted_qty: dict[str, int] = field(default_factory=dict)   # side → 재계산 수량
    orders: list[OrderRecord] = field(default_factory=list)
    states: list[RebalanceState] = field(default_factory=list)

    @property
    def sent_orders(self) -> list[OrderRecord]:
        return [o for o in self.orders if o.sent]

    def orders_in(self, phase: RebalanceState) -> list[OrderRecord]:
        return [o for o in self.orders if o.phase == phase]


class PortfolioRebalancer:
    """130/30 롱숏 리밸런서.

    broker와 market_data는 진입점에서 한 번 만들어 주입한다.
    """

    def __init__(
        self,
        broker: BrokerAPI,
        ranker: MomentumRanker,
        market_data: MarketDataManager,
        short_ratio: float = 0.30,
        price_lookback_minutes: int = 1,
        max_workers: int = 8,
    ):
        self.broker = broker
        self.ranker = ranker
        self.market_data = market_data
        self.short_ratio = short_ratio
        self.price_lookback_minutes = price_lookback_minutes
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._report: Optional[RebalanceReport] = None

    # ─── 사이클 ─────────────────────────────────────────────────────────────

    def rebalance(self) -> RebalanceReport:
        """리밸런싱 한 사이클 실행."""
        report = RebalanceReport()
        self._report = report
        try:
            self._enter(RebalanceState.RANK)
            ranked = self.ranker.select()

            self._enter(RebalanceState.SIZE)
            target = self.size(ranked)
            report.target = target

            self._enter(RebalanceState.RECONCILE)
            report.blacklist = self.reconcile(target)

            self._enter(RebalanceState.BATCH_ORDER)
            if target.qty_per_long is not None:
                report.long_batch = self.send_batch_order(
                    target.qty_per_long, target.long_symbols, OrderSide.BUY, report.blacklist)
            if target.qty_per_short is not None:
                report.short_batch = self.send_batch_order(
                    target.qty_per_short, target.short_symbols, OrderSide.SELL, report.blacklist)

            self._enter(RebalanceState.RECOVER)
            self.recover(target, report)

            self._enter(RebalanceState.DONE)
            logger.info(
                f"리밸런싱 완료: 주문 {len(report.sent_orders)}건 "
                f"(실패 {sum(1 for o in report.sent_orders if not o.ok)}건)"
            )
            return report
        finally:
            self._report = None

    def _enter(self, state: RebalanceState) -> None:
        self._report.states.append(state)
        logger.debug(f"리밸런싱 단계: {state.value}")

    # ─── SIZE ───────────────────────────────────────────────────────────────

    def size(self, ranked: RankResult) -> TargetPortfolio:
        """평가금과 후보 가격으로 종목당 수량 계산."""
        try:
            equity = float(self.broker.get_account_info().equity)
        except Exception as e:
            raise GatewayUnavailableError(f"계좌 조회 실패: {e}") from e

        short_notional = self.short_ratio * equity
        long_notional = short_notional + equity
        prices = self.fetch_prices(ranked.long_symbols + ranked.short_symbols)

        target = TargetPortfolio(
            long_symbols=list(ranked.long_symbols),
            short_symbols=list(ranked.short_symbols),
            qty_per_long=None,
            qty_per_short=None,
            long_notional=long_notional,
            short_notional=short_notional,
            prices=prices,
        )
        for side, symbols, notional in (
            (LONG, target.long_symbols, long_notional),
            (SHORT, target.short_symbols, short_notional),
        ):
            try:
                qty = self._quantity_per_symbol(side, equity, notional, [prices[s] for s in symbols])
            except SizingError as e:
                logger.error(f"사이징 생략: {e}")
                continue
            if side == LONG:
                target.qty_per_long = qty
            else:
                target.qty_per_short = qty

        logger.info(
            f"평가금 {equity:,.2f} → 롱 {long_notional:,.2f} ({target.qty_per_long}주/종목), "
            f"숏 {short_notional:,.2f} ({target.qty_per_short}주/종목)"
        )
        return target

    @staticmethod
    def _quantity_per_symbol(side: str, equity: float, notional: float, prices: list[float]) -> int:
        if not equity or equity <= 0:
            raise SizingError(side, f"평가금 없음 ({equity})")
        total = sum(prices)
        if total <= 0:
            raise SizingError(side, f"가격 합계 0 (종목 {len(prices)}개)")
        return math.floor(notional / total)

    def fetch_prices(self, symbols: list[str]) -> dict[str, float]:
        """종목별 현재가. 조회 실패 종목은 0.0."""
        outcomes = self._fan_out(
            lambda s: self.market_data.get_latest_price(s, self.price_lookback_minutes), symbols)
        prices = {}
        for symbol in symbols:
            value = outcomes[symbol]
            if isinstance(value, Exception):
                logger.warning(f"{symbol}: 가격 조회 실패, 0으로 처리 ({value})")
                value = 0.0
            prices[symbol] = float(value)
        return prices

    # ─── RECONCILE ──────────────────────────────────────────────────────────

    def cancel_open_orders(self) -> int:
        """미체결 주문 전부 취소. 취소된 건수 반환."""
        try:
            orders = self.broker.get_open_orders()
        except Exception as e:
            raise GatewayUnavailableError(f"미체결 주문 조회 실패: {e}") from e

        outcomes = self._fan_out(lambda o: self.broker.cancel_order(o.order_id), orders)
        cancelled = 0
        for order in orders:
            value = outcomes[order]
            if value is True:
                cancelled += 1
            else:
                logger.warning(f"주문 취소 실패: {order.order_id} {order.symbol} ({value})")
        if orders:
            logger.info(f"미체결 주문 {cancelled}/{len(orders)}건 취소")
        return cancelled

    def reconcile(self, target: TargetPortfolio) -> set[str]:
        """보유 포지션을 목표에 맞춘다. 이미 목표 방향으로 보유 중인 종목(블랙리스트) 반환."""
        self.cancel_open_orders()
        try:
            positions = self.broker.get_positions()
        except Exception as e:
            raise GatewayUnavailableError(f"포지션 조회 실패: {e}") from e

        blacklist: set[str] = set()
        outcomes = self._fan_out(lambda p: self._reconcile_position(p, target, blacklist), positions)
        for position in positions:
            value = outcomes[position]
            if isinstance(value, Exception):
                logger.error(f"{position.symbol}: 포지션 정리 중 예외 ({value})")
        return blacklist

    def _reconcile_position(self, position: LivePosition, target: TargetPortfolio, blacklist: set[str]) -> None:
        symbol, qty = position.symbol, abs(position.qty)
        phase = RebalanceState.RECONCILE

        if symbol not in target.long_symbols and symbol not in target.short_symbols:
            side = OrderSide.SELL if position.side == PositionSide.LONG else OrderSide.BUY
            self.submit_order(qty, symbol, side, phase)
            return

        if symbol in target.long_symbols:
            if position.side == PositionSide.SHORT:
                self.submit_order(qty, symbol, OrderSide.BUY, phase)
                return
            if target.qty_per_long is None:
                logger.warning(f"{symbol}: 롱 사이징 실패로 수량 조정 생략")
            elif qty != target.qty_per_long:
                diff = qty - target.qty_per_long
                self.submit_order(abs(diff), symbol, OrderSide.SELL if diff > 0 else OrderSide.BUY, phase)
        else:
            if position.side == PositionSide.LONG:
                self.submit_order(qty, symbol, OrderSide.SELL, phase)
                return
            if target.qty_per_short is None:
                logger.warning(f"{symbol}: 숏 사이징 실패로 수량 조정 생략")
            elif qty != target.qty_per_short:
                diff = qty - target.qty_per_short
                self.submit_order(abs(diff), symbol, OrderSide.BUY if diff > 0 else OrderSide.SELL, phase)

        with self._lock:
            blacklist.add(symbol)

    # ─── BATCH_ORDER ────────────────────────────────────────────────────────

    def send_batch_order(
        self,
        qty: int,
        symbols: list[str],
        side: OrderSide,
        blacklist: set[str],
    ) -> BatchOutcome:
        """블랙리스트에 없는 종목에 동일 수량 주문. 체결/미체결 종목 분리."""
        pending = [s for s in symbols if s not in blacklist]
        outcomes = self._fan_out(
            lambda s: self.submit_order(qty, s, side, RebalanceState.BATCH_ORDER), pending)

        batch = BatchOutcome()
        for symbol in pending:
            if outcomes[symbol] is True:
                batch.executed.append(symbol)
            else:
                batch.incomplete.append(symbol)
        return batch

    # ─── RECOVER ────────────────────────────────────────────────────────────

    def recover(self, target: TargetPortfolio, report: RebalanceReport) -> None:
        """일부 실패한 방향의 자금을 성공 종목에 재분배."""
        for side, batch, notional, qty, order_side in (
            (LONG, report.long_batch, target.long_notional, target.qty_per_long, OrderSide.BUY),
            (SHORT, report.short_batch, target.short_notional, target.qty_per_short, OrderSide.SELL),
        ):
            if qty is None or not batch.incomplete or not batch.executed:
                continue

            total = sum(target.prices.get(s, 0.0) for s in batch.executed)
            if total <= 0:
                logger.error(f"[{side}] 재분배 생략: 체결 종목 가격 합계 0")
                continue

            adjusted = math.floor(notional / total)
            report.adjusted_qty[side] = adjusted
            logger.info(
                f"[{side}] 미체결 {', '.join(batch.incomplete)} → "
                f"체결 종목 수량 {qty} → {adjusted} 조정"
            )
            delta = adjusted - qty
            self._fan_out(
                lambda s: self.submit_order(delta, s, order_side, RebalanceState.RECOVER), batch.executed)

    # ─── 주문 ───────────────────────────────────────────────────────────────

    def submit_order(
        self,
        qty: int,
        symbol: str,
        side: OrderSide,
        phase: RebalanceState = RebalanceState.DONE,
    ) -> bool:
        """시장가/당일 주문 제출. 수량 <= 0이면 보내지 않고 True."""
        if qty <= 0:
            logger.info(f"Quantity <= 0, order for {qty} {symbol} {side.value} not sent")
            self._record(OrderRecord(phase, symbol, qty, side, sent=False, ok=True, message="no-op"))
            return True

        intent = OrderIntent(symbol=symbol, qty=int(qty), side=side)
        try:
            result = self.broker.submit_order(intent)
        except OrderRejection as e:
            logger.warning(f"Order of {qty} {symbol} {side.value} rejected: {e}")
            self._record(OrderRecord(phase, symbol, qty, side, sent=True, ok=False, message=str(e)))
            return False
        except Exception as e:
            logger.error(f"Order of {qty} {symbol} {side.value} failed: {e}")
            self._record(OrderRecord(phase, symbol, qty, side, sent=True, ok=False, message=str(e)))
            return False

        if result.ok:
            logger.info(f"Market order of {qty} {symbol} {side.value} completed.")
        else:
            logger.warning(f"Order of {qty} {symbol} {side.value} failed: {result.message or result.status.value}")
        self._record(OrderRecord(phase, symbol, qty, side, sent=True, ok=result.ok, message=result.message))
        return result.ok

    def close_all_positions(self) -> list[OrderRecord]:
        """보유 포지션 전량 청산."""
        report = RebalanceReport()
        self._report = report
        try:
            positions = self.broker.get_positions()
            self._fan_out(
                lambda p: self.submit_order(
                    abs(p.qty), p.symbol,
                    OrderSide.SELL if p.side == PositionSide.LONG else OrderSide.BUY,
                ),
                positions,
            )
            return report.orders
        finally:
            self._report = None

    def _record(self, record: OrderRecord) -> None:
        with self._lock:
            if self._report is not None:
                self._report.orders.append(record)

    def _fan_out(self, fn: Callable[[Any], Any], items: list) -> dict[Any, Any]:
        """items 각각에 fn을 병렬 실행하고 전부 끝날 때까지 기다린다.

        반환: {item: 결과 또는 예외}. 한 종목의 실패가 다른 종목을 중단시키지 않는다.
        """
        if not items:
            return {}
        outcomes: dict[Any, Any] = {}
        workers = max(1, min(self.max_workers, len(items)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rebalance") as executor:
            futures = {executor.submit(fn, item): item for item in items}
            for future in as_completed(futures):
                item = futures[future]
                try:
                    outcomes[item] = future.result()
                except Exception as e:
                    outcomes[item] = e
        return outcomes
