"""Settings and configuration builder for the video analysis service.

Every tunable is read from the environment with the ``VIDEOANALYSIS_``
prefix. The defaults reproduce the production behaviour of the analysis
pipeline: 50 MiB chunks, three upload attempts with a 2 s doubling backoff,
a 5 s poll interval for at most 240 attempts (20 minutes) and results kept
for 24 hours.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db

MIB = 1024 * 1024


def _default_temp_root() -> Path:
    return Path(tempfile.gettempdir()) / "videoanalysis"


class AnalysisSettings(BaseSettings):
    """Pydantic settings container for the analysis pipeline."""

    model_config = SettingsConfigDict(env_prefix="VIDEOANALYSIS_")

    database_url: str = Field(
        default="sqlite:///videoanalysis.db",
        description="SQLAlchemy URL of the job and presentation store.",
    )
    remote_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the remote analysis service.",
    )
    chunk_size_bytes: int = Field(
        default=50 * MIB,
        ge=1,
        description="Upper bound on the size of one uploaded chunk.",
    )
    temp_root: Path = Field(
        default_factory=_default_temp_root,
        description="Directory holding incoming sources and per-job chunk directories.",
    )
    upload_max_attempts: int = Field(default=3, ge=1)
    upload_initial_backoff_seconds: float = Field(default=2.0, ge=0.0)
    upload_max_backoff_seconds: float = Field(default=10.0, ge=0.0)
    upload_connect_timeout_seconds: float = Field(default=10.0, gt=0.0)
    upload_read_timeout_seconds: float = Field(
        default=30 * 60,
        gt=0.0,
        description="Read/write timeout of a single chunk request.",
    )
    poll_interval_seconds: float = Field(default=5.0, ge=0.0)
    poll_max_attempts: int = Field(
        default=240,
        ge=1,
        description="Poll ceiling; 240 attempts at 5 s is twenty minutes.",
    )
    poll_request_timeout_seconds: float = Field(default=30.0, gt=0.0)
    result_ttl_hours: int = Field(default=24, ge=1)
    cache_sweep_interval_seconds: float = Field(default=3600.0, gt=0.0)
    reaper_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="How often the maintenance loop looks for stalled jobs.",
    )
    runner_core_workers: int = Field(default=5, ge=1)
    runner_max_workers: int = Field(default=20, ge=1)
    runner_backlog_capacity: int = Field(default=100, ge=0)
    memory_low_watermark_mb: int = Field(
        default=100,
        ge=0,
        description="Available memory below which the uploader asks for a GC pass.",
    )
    memory_pressure_pause_seconds: float = Field(default=0.1, ge=0.0)
    storage_root_markers: tuple[str, ...] = Field(
        default=("stored_videos", "videos"),
        description="Directory names where relative storage paths start, in priority order.",
    )
    video_url_prefix: str = Field(default="/api/files/videos/")
    default_target_time: str = Field(default="6:00")
    log_level: str = Field(default="INFO")

    @property
    def poll_ceiling_seconds(self) -> float:
        return self.poll_interval_seconds * self.poll_max_attempts


@dataclass(slots=True)
class AppConfig:
    settings: AnalysisSettings
    engine: Engine
    session_factory: sessionmaker[Session]


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Background phases touch the store from worker threads.
        return {"connect_args": {"check_same_thread": False}}
    return {}


def load_config(settings: AnalysisSettings | None = None) -> AppConfig:
    """Build settings, engine and session factory and make sure tables exist."""
    settings = settings or AnalysisSettings()
    settings.temp_root.mkdir(parents=True, exist_ok=True)

    engine = create_engine(settings.database_url, future=True, **_engine_kwargs(settings.database_url))
    session_factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)

    init_db(engine)

    return AppConfig(settings=settings, engine=engine, session_factory=session_factory)


__all__ = ["AnalysisSettings", "AppConfig", "load_config", "MIB"]
