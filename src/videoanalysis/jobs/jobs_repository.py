"""Persistence layer for analysis jobs."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db.db_models import AnalysisJobModel
from ..exceptions import (
    ActiveJobExistsError,
    IntegrityConstraintViolation,
    InvalidTransitionError,
    JobNotFoundError,
    ensure_found,
    handle_sqlalchemy_errors,
)
from .jobs_models import ACTIVE_STATUSES, JobSnapshot, JobStatus, JobUpdate, allowed_sources


def _to_snapshot(model: AnalysisJobModel) -> JobSnapshot:
    return JobSnapshot(
        job_id=model.job_id,
        presentation_id=model.presentation_id,
        original_filename=model.original_filename,
        file_size=model.file_size,
        status=JobStatus(model.status),
        error_message=model.error_message,
        remote_job_id=model.remote_job_id,
        video_path=model.video_path,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


class AnalysisJobRepository:
    """Manage analysis_job records.

    ``apply_update`` is the only writer of ``status``. Every write is a
    conditional ``UPDATE`` guarded by the statuses allowed to reach the
    target, so concurrent writers cannot move a job out of a terminal state.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def create(
        self,
        *,
        presentation_id: str,
        original_filename: str,
        file_size: int,
    ) -> JobSnapshot:
        """Insert a PENDING job unless the presentation already has an active one."""
        now = self._clock()
        with self._session_factory() as session:
            existing = self._find_active(session, presentation_id)
            if existing is not None:
                raise ActiveJobExistsError(presentation_id, existing.job_id)

            model = AnalysisJobModel(
                job_id=uuid.uuid4().hex,
                presentation_id=presentation_id,
                original_filename=original_filename,
                file_size=file_size,
                status=JobStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(model)
            try:
                with handle_sqlalchemy_errors(entity="analysis_job"):
                    session.commit()
            except IntegrityConstraintViolation as exc:
                # Lost the race against a concurrent create.
                session.rollback()
                raise ActiveJobExistsError(presentation_id) from exc
            return _to_snapshot(model)

    def get(self, job_id: str) -> JobSnapshot:
        with self._session_factory() as session:
            model = ensure_found(
                session.get(AnalysisJobModel, job_id),
                entity="analysis_job",
                identifier=job_id,
                error=JobNotFoundError,
            )
            return _to_snapshot(model)

    def find_active(self, presentation_id: str) -> JobSnapshot | None:
        with self._session_factory() as session:
            model = self._find_active(session, presentation_id)
            return _to_snapshot(model) if model is not None else None

    def apply_update(self, job_id: str, change: JobUpdate) -> JobSnapshot:
        """Apply ``change`` if the current status allows it and return the new state."""
        values: dict[str, object] = {
            "status": change.status.value,
            "error_message": change.error_message,
            "updated_at": self._clock(),
        }
        if change.remote_job_id:
            values["remote_job_id"] = change.remote_job_id
        if change.video_path:
            values["video_path"] = change.video_path

        sources = [status.value for status in allowed_sources(change.status)]
        statement = (
            update(AnalysisJobModel)
            .where(
                AnalysisJobModel.job_id == job_id,
                AnalysisJobModel.status.in_(sources),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._session_factory() as session:
            with handle_sqlalchemy_errors(entity="analysis_job"):
                result = session.execute(statement)
                if result.rowcount == 0:
                    session.rollback()
                    model = ensure_found(
                        session.get(AnalysisJobModel, job_id),
                        entity="analysis_job",
                        identifier=job_id,
                        error=JobNotFoundError,
                    )
                    raise InvalidTransitionError(job_id, model.status, change.status.value)
                session.commit()
            model = session.get(AnalysisJobModel, job_id, populate_existing=True)
            return _to_snapshot(model)

    def list_for_presentation(self, presentation_id: str) -> list[JobSnapshot]:
        """Return every job of a presentation, newest first."""
        statement = (
            select(AnalysisJobModel)
            .where(AnalysisJobModel.presentation_id == presentation_id)
            .order_by(AnalysisJobModel.created_at.desc())
        )
        with self._session_factory() as session:
            return [_to_snapshot(model) for model in session.scalars(statement)]

    def list_stalled(self, older_than: datetime) -> list[JobSnapshot]:
        """Return PROCESSING jobs without a remote handle untouched since ``older_than``."""
        statement = (
            select(AnalysisJobModel)
            .where(
                AnalysisJobModel.status == JobStatus.PROCESSING.value,
                AnalysisJobModel.remote_job_id.is_(None),
                AnalysisJobModel.updated_at < older_than,
            )
            .order_by(AnalysisJobModel.updated_at)
        )
        with self._session_factory() as session:
            return [_to_snapshot(model) for model in session.scalars(statement)]

    def list_polling(self) -> list[JobSnapshot]:
        """Return PROCESSING jobs that already carry a remote handle."""
        statement = (
            select(AnalysisJobModel)
            .where(
                AnalysisJobModel.status == JobStatus.PROCESSING.value,
                AnalysisJobModel.remote_job_id.is_not(None),
            )
            .order_by(AnalysisJobModel.updated_at)
        )
        with self._session_factory() as session:
            return [_to_snapshot(model) for model in session.scalars(statement)]

    @staticmethod
    def _find_active(session: Session, presentation_id: str) -> AnalysisJobModel | None:
        statement = (
            select(AnalysisJobModel)
            .where(
                AnalysisJobModel.presentation_id == presentation_id,
                AnalysisJobModel.status.in_([status.value for status in ACTIVE_STATUSES]),
            )
            .limit(1)
        )
        return session.scalars(statement).first()
