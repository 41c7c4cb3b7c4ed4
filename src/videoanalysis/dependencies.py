"""Dependency wiring helpers."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

import httpx
from fastapi import FastAPI

from .cache.result_cache import ResultCache
from .config import AppConfig
from .jobs.jobs_api import router as jobs_router
from .jobs.jobs_orchestrator import AnalysisOrchestrator
from .jobs.jobs_repository import AnalysisJobRepository
from .jobs.jobs_runner import AnalysisJobRunner
from .jobs.jobs_status import JobStatusService
from .notifications.notifier import LoggingNotifier, Notifier
from .presentations.presentations_repository import (
    AnalysisSectionRepository,
    PresentationRepository,
)
from .remote.result_poller import ResultPoller
from .upload.chunk_uploader import ChunkUploader, RetryPolicy
from .upload.memory_pressure import MIB, MemoryPressureMonitor
from .upload.source_store import SourceStore

Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class AnalysisServices:
    """Everything the routes and the maintenance loops need."""

    job_repo: AnalysisJobRepository
    presentation_repo: PresentationRepository
    section_repo: AnalysisSectionRepository
    cache: ResultCache
    runner: AnalysisJobRunner
    orchestrator: AnalysisOrchestrator
    status_service: JobStatusService


def build_services(
    config: AppConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleep | None = None,
    notifier: Notifier | None = None,
) -> AnalysisServices:
    """Assemble repositories, pipeline components and facades from settings.

    ``transport`` and ``sleep`` replace the network and the clock of the
    uploader and poller.
    """
    settings = config.settings
    job_repo = AnalysisJobRepository(config.session_factory)
    presentation_repo = PresentationRepository(config.session_factory)
    section_repo = AnalysisSectionRepository(config.session_factory)
    cache = ResultCache(ttl=timedelta(hours=settings.result_ttl_hours))
    runner = AnalysisJobRunner(
        core_workers=settings.runner_core_workers,
        max_workers=settings.runner_max_workers,
        backlog_capacity=settings.runner_backlog_capacity,
    )
    source_store = SourceStore(root=settings.temp_root)

    timing: dict[str, Sleep] = {"sleep": sleep} if sleep is not None else {}
    uploader = ChunkUploader(
        base_url=settings.remote_base_url,
        chunk_root=source_store.chunk_root(),
        chunk_size=settings.chunk_size_bytes,
        retry=RetryPolicy(
            max_attempts=settings.upload_max_attempts,
            initial_backoff_seconds=settings.upload_initial_backoff_seconds,
            max_backoff_seconds=settings.upload_max_backoff_seconds,
        ),
        timeout=httpx.Timeout(
            settings.upload_read_timeout_seconds,
            connect=settings.upload_connect_timeout_seconds,
        ),
        storage_markers=settings.storage_root_markers,
        memory=MemoryPressureMonitor(
            low_watermark_bytes=settings.memory_low_watermark_mb * MIB,
            pause_seconds=settings.memory_pressure_pause_seconds,
            **timing,
        ),
        transport=transport,
        **timing,
    )
    poller = ResultPoller(
        base_url=settings.remote_base_url,
        interval_seconds=settings.poll_interval_seconds,
        max_attempts=settings.poll_max_attempts,
        request_timeout_seconds=settings.poll_request_timeout_seconds,
        transport=transport,
        **timing,
    )
    orchestrator = AnalysisOrchestrator(
        jobs=job_repo,
        presentations=presentation_repo,
        sections=section_repo,
        uploader=uploader,
        poller=poller,
        cache=cache,
        runner=runner,
        source_store=source_store,
        notifier=notifier or LoggingNotifier(),
        default_target_time=settings.default_target_time,
        video_url_prefix=settings.video_url_prefix,
    )
    status_service = JobStatusService(jobs=job_repo, cache=cache)
    return AnalysisServices(
        job_repo=job_repo,
        presentation_repo=presentation_repo,
        section_repo=section_repo,
        cache=cache,
        runner=runner,
        orchestrator=orchestrator,
        status_service=status_service,
    )


def include_routers(app: FastAPI, config: AppConfig, services: AnalysisServices) -> None:
    """Mount module routers and attach services."""
    app.state.config = config
    app.state.services = services
    app.state.orchestrator = services.orchestrator
    app.state.status_service = services.status_service
    app.state.result_cache = services.cache

    app.include_router(jobs_router)
