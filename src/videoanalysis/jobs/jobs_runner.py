"""Bounded executor for background analysis phases."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from enum import StrEnum

logger = logging.getLogger(__name__)

Work = Callable[[], Awaitable[None]]


class SubmitMode(StrEnum):
    """Where a submitted unit of work ended up."""

    WORKER = "worker"
    QUEUED = "queued"
    CALLER = "caller"


class AnalysisJobRunner:
    """Run upload phases on a bounded pool of asyncio workers.

    Admission follows a classic thread pool: start a worker while fewer
    than ``core_workers`` are busy, otherwise queue into the backlog, and
    once the backlog is full grow up to ``max_workers``. When even that is
    exhausted the submitting coroutine runs the work itself.

    Poll phases go through :meth:`spawn`; they mostly sleep and do not
    occupy worker capacity.
    """

    def __init__(
        self,
        *,
        core_workers: int = 5,
        max_workers: int = 20,
        backlog_capacity: int = 100,
        log: logging.Logger | None = None,
    ) -> None:
        if core_workers < 1:
            raise ValueError("core_workers must be at least 1")
        if max_workers < core_workers:
            raise ValueError("max_workers cannot be lower than core_workers")
        if backlog_capacity < 0:
            raise ValueError("backlog_capacity cannot be negative")
        self._core_workers = core_workers
        self._max_workers = max_workers
        self._backlog_capacity = backlog_capacity
        self._backlog: deque[tuple[Work, str]] = deque()
        self._workers: set[asyncio.Task[None]] = set()
        self._spawned: set[asyncio.Task[None]] = set()
        self._closed = False
        self._log = log or logger

    @property
    def active_workers(self) -> int:
        return len(self._workers)

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    @property
    def spawned_tasks(self) -> int:
        return len(self._spawned)

    async def submit(self, work: Work, *, name: str) -> SubmitMode:
        """Admit ``work``; returns once it is running, queued or done inline."""
        if self._closed:
            raise RuntimeError("runner is closed")

        if len(self._workers) < self._core_workers:
            self._start_worker(work, name)
            return SubmitMode.WORKER
        if len(self._backlog) < self._backlog_capacity:
            self._backlog.append((work, name))
            self._log.debug(
                "analysis.runner.queued",
                extra={"task_name": name, "backlog": len(self._backlog)},
            )
            return SubmitMode.QUEUED
        if len(self._workers) < self._max_workers:
            self._start_worker(work, name)
            return SubmitMode.WORKER

        self._log.warning(
            "analysis.runner.saturated",
            extra={
                "task_name": name,
                "workers": len(self._workers),
                "backlog": len(self._backlog),
            },
        )
        await self._run_guarded(work, name)
        return SubmitMode.CALLER

    def spawn(self, work: Work, *, name: str) -> asyncio.Task[None]:
        """Schedule a lightweight task outside of worker capacity."""
        if self._closed:
            raise RuntimeError("runner is closed")
        task = asyncio.create_task(self._run_guarded(work, name), name=name)
        self._spawned.add(task)
        task.add_done_callback(self._spawned.discard)
        return task

    async def join(self) -> None:
        """Wait until no worker, backlog entry or spawned task is left."""
        while self._workers or self._spawned:
            pending = list(self._workers | self._spawned)
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Drop the backlog and cancel outstanding work."""
        self._closed = True
        dropped = len(self._backlog)
        self._backlog.clear()
        pending = list(self._workers | self._spawned)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._log.info(
            "analysis.runner.closed",
            extra={"cancelled": len(pending), "dropped": dropped},
        )

    def _start_worker(self, work: Work, name: str) -> None:
        task = asyncio.create_task(self._worker_loop(work, name), name=f"worker:{name}")
        self._workers.add(task)
        task.add_done_callback(self._workers.discard)

    async def _worker_loop(self, first: Work, name: str) -> None:
        try:
            await self._run_guarded(first, name)
            while self._backlog and not self._closed:
                work, queued_name = self._backlog.popleft()
                await self._run_guarded(work, queued_name)
        finally:
            # Leave the pool in the same step that saw an empty backlog.
            self._workers.discard(asyncio.current_task())

    async def _run_guarded(self, work: Work, name: str) -> None:
        try:
            await work()
        except asyncio.CancelledError:
            raise
        except Exception:
            self._log.exception("analysis.runner.task_failed", extra={"task_name": name})
