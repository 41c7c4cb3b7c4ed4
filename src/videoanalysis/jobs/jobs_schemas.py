"""Pydantic schemas for analysis job responses."""

from datetime import datetime

from pydantic import BaseModel

from .jobs_models import JobStatusView


class AnalysisAcceptedSchema(BaseModel):
    job_id: str
    presentation_id: str
    status: str
    message: str


class AnalysisStatusSchema(BaseModel):
    job_id: str
    presentation_id: str
    status: str
    message: str
    created_at: datetime
    updated_at: datetime
    video_path: str | None = None

    @classmethod
    def from_view(cls, view: JobStatusView) -> "AnalysisStatusSchema":
        return cls(
            job_id=view.job_id,
            presentation_id=view.presentation_id,
            status=view.status.value,
            message=view.message,
            created_at=view.created_at,
            updated_at=view.updated_at,
            video_path=view.video_path,
        )
