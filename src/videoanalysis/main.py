"""FastAPI application entry point.

Run with ``uvicorn src.videoanalysis.main:create_app --factory``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import AnalysisServices, build_services, include_routers
from .lifecycle import run_periodic_cache_sweep, run_periodic_stalled_job_reaper
from .logging import configure_logging


def create_app(
    config: AppConfig | None = None,
    *,
    services: AnalysisServices | None = None,
) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    cfg = config or load_config()
    configure_logging(cfg.settings.log_level)
    wired = services or build_services(cfg)
    settings = cfg.settings

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        shutdown_event = asyncio.Event()
        wired.orchestrator.resume_polling()
        tasks = [
            asyncio.create_task(
                run_periodic_cache_sweep(
                    cache=wired.cache,
                    shutdown_event=shutdown_event,
                    interval_seconds=settings.cache_sweep_interval_seconds,
                )
            ),
            asyncio.create_task(
                run_periodic_stalled_job_reaper(
                    jobs=wired.job_repo,
                    grace=timedelta(seconds=settings.poll_ceiling_seconds),
                    shutdown_event=shutdown_event,
                    interval_seconds=settings.reaper_interval_seconds,
                )
            ),
        ]
        try:
            yield
        finally:
            shutdown_event.set()
            await asyncio.gather(*tasks, return_exceptions=True)
            await wired.runner.aclose()

    app = FastAPI(title="Video Analysis", lifespan=lifespan)
    include_routers(app, cfg, wired)

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app
