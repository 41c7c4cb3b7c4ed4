"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

ACTIVE_STATUSES_SQL = "status IN ('pending', 'processing')"


class Base(DeclarativeBase):
    """Base declarative class."""


class PresentationModel(Base):
    __tablename__ = "presentation"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    owner_user_id: Mapped[str | None] = mapped_column(String(64))
    goal_time_minutes: Mapped[int | None] = mapped_column(Integer)
    video_url: Mapped[str | None] = mapped_column(String(1024))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    jobs: Mapped[list["AnalysisJobModel"]] = relationship(
        back_populates="presentation",
        cascade="all, delete-orphan",
    )
    sections: Mapped[list["AnalysisSectionModel"]] = relationship(
        back_populates="presentation",
        cascade="all, delete-orphan",
    )


class AnalysisJobModel(Base):
    __tablename__ = "analysis_job"
    __table_args__ = (
        # One pending or processing job per presentation.
        Index(
            "uq_analysis_job_active_presentation",
            "presentation_id",
            unique=True,
            sqlite_where=text(ACTIVE_STATUSES_SQL),
            postgresql_where=text(ACTIVE_STATUSES_SQL),
        ),
    )

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    presentation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("presentation.id"), nullable=False, index=True
    )
    original_filename: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    error_message: Mapped[str | None] = mapped_column(Text)
    remote_job_id: Mapped[str | None] = mapped_column(String(128))
    video_path: Mapped[str | None] = mapped_column(String(1024))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    presentation: Mapped[PresentationModel] = relationship(back_populates="jobs")


class AnalysisSectionModel(Base):
    """Derived analysis sub-record (voice, transcript or feedback) of a presentation."""

    __tablename__ = "analysis_section"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    presentation_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("presentation.id"), nullable=False, index=True
    )
    job_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)  # voice|transcript|feedback
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    presentation: Mapped[PresentationModel] = relationship(back_populates="sections")
