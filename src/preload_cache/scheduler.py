"""
Periodic preloading with APScheduler.

All registered preload jobs share ONE BackgroundScheduler, created and started
when the first job is registered. Each run goes through the engine's skip
check, so only missing or soft-expired entries are reloaded.
"""

from __future__ import annotations

import logging
import threading
from typing import Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import EngineConfig
from .engine import LoadDefinition, PreloadEngine

logger = logging.getLogger(__name__)

# A slow run must not overlap the next one for the same job; missed runs collapse
_JOB_DEFAULTS = {"coalesce": True, "max_instances": 1}

_scheduler: BackgroundScheduler | None = None
_scheduler_lock = threading.RLock()


def _running_scheduler() -> BackgroundScheduler:
    global _scheduler
    with _scheduler_lock:
        if _scheduler is None:
            _scheduler = BackgroundScheduler(daemon=True, job_defaults=_JOB_DEFAULTS)
            _scheduler.start()
            logger.info("Preload scheduler started")
        return _scheduler


class PreloadScheduler:
    """
    Re-run a preload on a fixed interval.

    Example:
        scheduler = PreloadScheduler(engine)
        scheduler.register("catalog", defs, interval_seconds=300)
        ...
        PreloadScheduler.shutdown()
    """

    def __init__(self, engine: PreloadEngine):
        self.engine = engine
        self._job_ids: set[str] = set()

    def register(
        self,
        job_id: str,
        defs: Sequence[LoadDefinition],
        interval_seconds: float,
        config: EngineConfig | None = None,
        run_immediately: bool = True,
    ) -> None:
        """
        Schedule a preload of defs every interval_seconds.

        Args:
            job_id: unique job name; registering the same id replaces the job
            defs: definitions to preload on each run
            interval_seconds: time between runs
            config: engine settings for this job (defaults to the engine's)
            run_immediately: run once synchronously before scheduling
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        defs = list(defs)

        def preload_job():
            try:
                self.engine.run(defs, config)
            except Exception as e:
                logger.error(f"Scheduled preload {job_id} failed: {e}", exc_info=True)

        if run_immediately:
            preload_job()

        _running_scheduler().add_job(
            preload_job,
            trigger=IntervalTrigger(seconds=interval_seconds),
            id=job_id,
            replace_existing=True,
        )
        self._job_ids.add(job_id)

    def unregister(self, job_id: str) -> None:
        """Remove a scheduled preload job. Unknown ids are ignored."""
        self._job_ids.discard(job_id)
        with _scheduler_lock:
            if _scheduler is not None and _scheduler.get_job(job_id) is not None:
                _scheduler.remove_job(job_id)

    @property
    def job_ids(self) -> list[str]:
        """Ids of the jobs this instance registered that are still scheduled."""
        with _scheduler_lock:
            if _scheduler is None:
                return []
            return sorted(i for i in self._job_ids if _scheduler.get_job(i) is not None)

    @staticmethod
    def shutdown(wait: bool = True) -> None:
        """Stop the shared scheduler and drop every job."""
        global _scheduler
        with _scheduler_lock:
            if _scheduler is not None:
                _scheduler.shutdown(wait=wait)
                _scheduler = None
                logger.info("Preload scheduler stopped")
