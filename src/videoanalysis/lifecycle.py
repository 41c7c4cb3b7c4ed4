"""Background maintenance loops started with the application."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from .cache.result_cache import ResultCacheBackend
from .jobs.jobs_reaper import reap_stalled_jobs
from .jobs.jobs_repository import AnalysisJobRepository

logger = logging.getLogger(__name__)


async def _run_periodic(
    name: str,
    action: Callable[[], object],
    *,
    shutdown_event: asyncio.Event,
    interval_seconds: float,
) -> None:
    interval = max(0.01, float(interval_seconds))
    while not shutdown_event.is_set():
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
        else:
            break
        try:
            action()
        except Exception:
            logger.exception("maintenance.iteration_failed", extra={"loop": name})


async def run_periodic_cache_sweep(
    *,
    cache: ResultCacheBackend,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 3600.0,
) -> None:
    """Purge expired results every ``interval_seconds`` until shutdown."""
    await _run_periodic(
        "cache_sweep",
        cache.purge_expired,
        shutdown_event=shutdown_event,
        interval_seconds=interval_seconds,
    )


async def run_periodic_stalled_job_reaper(
    *,
    jobs: AnalysisJobRepository,
    grace: timedelta,
    shutdown_event: asyncio.Event,
    interval_seconds: float = 300.0,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> None:
    """Fail interrupted uploads that stayed silent longer than ``grace``."""

    def _reap() -> None:
        reaped = reap_stalled_jobs(jobs, grace=grace, reference_time=clock())
        if reaped:
            logger.info("maintenance.reaper.done", extra={"reaped": len(reaped)})

    await _run_periodic(
        "stalled_job_reaper",
        _reap,
        shutdown_event=shutdown_event,
        interval_seconds=interval_seconds,
    )


__all__ = ["run_periodic_cache_sweep", "run_periodic_stalled_job_reaper"]
