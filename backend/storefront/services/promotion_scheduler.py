"""Process-wide lifecycle for the periodic promotion status job.

APScheduler-based background scheduler that runs
promotion_service.run_promotion_scheduler_tick() on a fixed interval.
Created once by create_app() and stored in app.extensions.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from storefront.time_utils import utcnow
from .promotion_service import TickResult, run_promotion_scheduler_tick

logger = logging.getLogger(__name__)

JOB_ID = "promotion_status_tick"


def _default_scheduler_factory():
    return BackgroundScheduler(timezone="UTC")


class PromotionScheduler:
    """Owns the promotion status job: start(), stop(), is_running(), tick().

    Overlapping ticks are prevented twice over: APScheduler runs the job
    with max_instances=1, and tick() itself holds a non-blocking lock so a
    manual tick (CLI, admin endpoint) never runs alongside a scheduled one.
    A skipped tick loses nothing; the next one recomputes from timestamps.
    """

    def __init__(
        self,
        app,
        interval_seconds: int = 60,
        scheduler_factory: Optional[Callable[[], object]] = None,
        clock: Callable = utcnow,
    ):
        """Initialize scheduler.

        Args:
            app: Flask application; each tick runs in its app context.
            interval_seconds: Seconds between ticks.
            scheduler_factory: Builds the APScheduler instance (injectable for tests).
            clock: Returns the current UTC-naive datetime (injectable for tests).
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.app = app
        self.interval_seconds = interval_seconds
        self._scheduler_factory = scheduler_factory or _default_scheduler_factory
        self._clock = clock

        self._scheduler = None
        self._is_running = False
        self._lifecycle_lock = threading.Lock()
        self._tick_guard = threading.Lock()

    def start(self) -> None:
        """Start the scheduler."""
        with self._lifecycle_lock:
            if self._is_running:
                logger.warning("PromotionScheduler already running")
                return

            scheduler = self._scheduler_factory()
            scheduler.add_job(
                self.tick,
                IntervalTrigger(seconds=self.interval_seconds),
                id=JOB_ID,
                name="Promotion status tick",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            self._scheduler = scheduler
            self._is_running = True
            logger.info("PromotionScheduler started (interval=%ss)", self.interval_seconds)

    def stop(self, wait: bool = True) -> None:
        """Stop the scheduler. Safe to call more than once."""
        with self._lifecycle_lock:
            if not self._is_running:
                return
            self._scheduler.shutdown(wait=wait)
            self._scheduler = None
            self._is_running = False
            logger.info("PromotionScheduler stopped")

    def is_running(self) -> bool:
        return self._is_running

    def tick(self) -> Optional[TickResult]:
        """Run one promotion status pass.

        Returns None when skipped (another tick in flight) or when the pass
        failed; failures are logged and never propagate into the scheduler
        thread.
        """
        if not self._tick_guard.acquire(blocking=False):
            logger.warning("Promotion tick skipped: previous tick still running")
            return None
        try:
            with self.app.app_context():
                return run_promotion_scheduler_tick(now=self._clock())
        except Exception as e:
            logger.error(f"Promotion tick failed: {e}", exc_info=True)
            return None
        finally:
            self._tick_guard.release()
