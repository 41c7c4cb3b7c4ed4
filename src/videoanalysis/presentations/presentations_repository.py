"""Persistence layer for presentations and their derived analysis sections."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..db.db_models import AnalysisSectionModel, PresentationModel
from ..exceptions import PresentationNotFoundError, ensure_found, handle_sqlalchemy_errors


@dataclass(slots=True)
class PresentationRecord:
    id: str
    title: str
    owner_user_id: str | None
    goal_time_minutes: int | None
    video_url: str | None
    created_at: datetime


def _to_record(model: PresentationModel) -> PresentationRecord:
    return PresentationRecord(
        id=model.id,
        title=model.title,
        owner_user_id=model.owner_user_id,
        goal_time_minutes=model.goal_time_minutes,
        video_url=model.video_url,
        created_at=model.created_at,
    )


class PresentationRepository:
    """Manage presentation records."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def create(
        self,
        presentation_id: str,
        *,
        title: str = "",
        owner_user_id: str | None = None,
        goal_time_minutes: int | None = None,
    ) -> PresentationRecord:
        with self._session_factory() as session:
            model = PresentationModel(
                id=presentation_id,
                title=title,
                owner_user_id=owner_user_id,
                goal_time_minutes=goal_time_minutes,
                created_at=datetime.utcnow(),
            )
            session.add(model)
            with handle_sqlalchemy_errors(entity="presentation"):
                session.commit()
            return _to_record(model)

    def get(self, presentation_id: str) -> PresentationRecord:
        with self._session_factory() as session:
            model = ensure_found(
                session.get(PresentationModel, presentation_id),
                entity="presentation",
                identifier=presentation_id,
                error=PresentationNotFoundError,
            )
            return _to_record(model)

    def set_video_url(self, presentation_id: str, video_url: str) -> None:
        with self._session_factory() as session:
            model = ensure_found(
                session.get(PresentationModel, presentation_id),
                entity="presentation",
                identifier=presentation_id,
                error=PresentationNotFoundError,
            )
            model.video_url = video_url
            with handle_sqlalchemy_errors(entity="presentation"):
                session.commit()


@dataclass(slots=True)
class AnalysisSectionRecord:
    kind: str
    job_id: str
    payload: dict[str, Any]
    created_at: datetime


class AnalysisSectionRepository:
    """Store the voice, transcript and feedback sections derived from a result.

    Saving replaces every earlier section of the presentation so the latest
    completed analysis is the only one on record.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def replace_sections(
        self,
        presentation_id: str,
        job_id: str,
        sections: Mapping[str, Mapping[str, Any]],
    ) -> None:
        now = datetime.utcnow()
        with self._session_factory() as session:
            ensure_found(
                session.get(PresentationModel, presentation_id),
                entity="presentation",
                identifier=presentation_id,
                error=PresentationNotFoundError,
            )
            session.execute(
                delete(AnalysisSectionModel).where(
                    AnalysisSectionModel.presentation_id == presentation_id
                )
            )
            for kind, payload in sections.items():
                session.add(
                    AnalysisSectionModel(
                        presentation_id=presentation_id,
                        job_id=job_id,
                        kind=kind,
                        payload_json=json.dumps(dict(payload), ensure_ascii=False),
                        created_at=now,
                    )
                )
            with handle_sqlalchemy_errors(entity="analysis_section"):
                session.commit()

    def list_sections(self, presentation_id: str) -> dict[str, AnalysisSectionRecord]:
        statement = select(AnalysisSectionModel).where(
            AnalysisSectionModel.presentation_id == presentation_id
        )
        with self._session_factory() as session:
            return {
                model.kind: AnalysisSectionRecord(
                    kind=model.kind,
                    job_id=model.job_id,
                    payload=json.loads(model.payload_json or "{}"),
                    created_at=model.created_at,
                )
                for model in session.scalars(statement)
            }
