from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.videoanalysis.db.db_init import init_db
from src.videoanalysis.jobs.jobs_repository import AnalysisJobRepository
from src.videoanalysis.presentations.presentations_repository import (
    AnalysisSectionRepository,
    PresentationRepository,
)


class RecordingSleep:
    """Async sleep replacement that records the requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def session_factory() -> sessionmaker[Session]:
    engine = create_engine("sqlite:///:memory:", future=True)
    factory: sessionmaker[Session] = sessionmaker(bind=engine, expire_on_commit=False)
    init_db(engine)
    return factory


@pytest.fixture
def job_repo(session_factory) -> AnalysisJobRepository:
    return AnalysisJobRepository(session_factory)


@pytest.fixture
def presentation_repo(session_factory) -> PresentationRepository:
    return PresentationRepository(session_factory)


@pytest.fixture
def section_repo(session_factory) -> AnalysisSectionRepository:
    return AnalysisSectionRepository(session_factory)


@pytest.fixture
def recorded_sleep() -> RecordingSleep:
    return RecordingSleep()
