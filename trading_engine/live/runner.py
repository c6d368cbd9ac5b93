"""
롱숏 전략 주기 실행 모듈.

[ 역할 ]
    리밸런서를 고정 간격(기본 60초)으로 실행하는 단일 스레드 스케줄러.
    - 속도 제한: 직전 실행 후 interval이 지나지 않았으면 본문을 건너뜀
    - 장 운영 확인: 장이 닫혀 있으면 다음 개장 시각까지 대기
    - 마감 임박: 마감까지 close_buffer_minutes 이내면 리밸런싱 생략
    - 종료: stop()이 취소 이벤트를 세우면 대기 중이던 루프가 즉시 빠져나옴.
      이미 나간 주문은 되돌리지 않는다.

[ 호출하는 곳 ]
    - run_long_short.py (진입점)
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from trading_engine.core.broker_api import BrokerAPI
from trading_engine.core.errors import GatewayUnavailableError
from trading_engine.live.rebalancer import PortfolioRebalancer, RebalanceReport

logger = logging.getLogger("trading_engine.live")

# 루프 한 바퀴의 최소 대기 (초)
MIN_WAIT_SECONDS = 1.0


def format_wait(seconds: float) -> str:
    """대기 시간을 'N hour(s) and M minute(s)' 형태로."""
    total_minutes = int(max(seconds, 0) // 60)
    hours, minutes = divmod(total_minutes, 60)
    minute_str = f"{minutes} minute{'s' if minutes != 1 else ''}"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} and {minute_str}"
    return minute_str


class LongShortRunner:
    """리밸런서 주기 실행기.

    사용 예:
        runner = LongShortRunner(broker, rebalancer, interval_seconds=60)
        runner.start()
        ...
        runner.stop()
    """

    def __init__(
        self,
        broker: BrokerAPI,
        rebalancer: PortfolioRebalancer,
        interval_seconds: float = 60,
        close_buffer_minutes: float = 15,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.broker = broker
        self.rebalancer = rebalancer
        self.interval_seconds = interval_seconds
        self.close_buffer_minutes = close_buffer_minutes
        self._monotonic = monotonic

        self._last_check: Optional[float] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_report: Optional[RebalanceReport] = None
        self.status = "stopped"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _set_status(self, status: str) -> None:
        self.status = status
        logger.info(status)

    def run_once(self, now: Optional[datetime] = None) -> float:
        """한 번 실행. 다음 실행까지 기다릴 초를 반환."""
        clock = self.broker.get_clock()
        now = now or clock.timestamp or datetime.now(timezone.utc)

        if not clock.is_open:
            wait = (clock.next_open - now).total_seconds()
            if wait <= 0:
                # 지난 개장 시각 (휴장일, 오래된 시계)
                self._set_status("Market is closed. Next open has already passed, checking again later")
                return max(self.interval_seconds, MIN_WAIT_SECONDS)
            self._set_status(f"Market is closed. Opens in {format_wait(wait)}")
            return max(wait, MIN_WAIT_SECONDS)

        tick = self._monotonic()
        if self._last_check is not None and tick - self._last_check < self.interval_seconds:
            return self.interval_seconds - (tick - self._last_check)
        self._last_check = tick

        until_close = (clock.next_close - now).total_seconds()
        if until_close <= self.close_buffer_minutes * 60:
            self._set_status(f"Market closes in {format_wait(until_close)}, skipping rebalance")
            return self.interval_seconds

        self._set_status("Checking positions...")
        try:
            self.last_report = self.rebalancer.rebalance()
        except GatewayUnavailableError as e:
            logger.error(f"리밸런싱 사이클 실패: {e}")
        except Exception:
            logger.exception("리밸런싱 사이클 중 예외 발생")
        return self.interval_seconds

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                delay = self.run_once()
            except Exception:
                logger.exception("장 운영 시각 조회 실패")
                delay = self.interval_seconds
            self._stop_event.wait(max(delay, MIN_WAIT_SECONDS))
        self.status = "stopped"

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="long-short-runner", daemon=True)
        self._thread.start()
        self._set_status("Trading cycle started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """루프 중단. 예약된 다음 실행은 남지 않는다."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._set_status("Strategy stopped")
