"""Completion notifications for analysis jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AnalysisCompletedEvent:
    job_id: str
    presentation_id: str
    presentation_title: str
    user_id: str | None


class Notifier(Protocol):
    """Delivers "analysis finished" notices to the presentation owner."""

    def analysis_completed(self, event: AnalysisCompletedEvent) -> None: ...


@dataclass(slots=True)
class LoggingNotifier:
    """Default notifier: writes the notice to the application log."""

    log: logging.Logger = field(default_factory=lambda: logger)

    def analysis_completed(self, event: AnalysisCompletedEvent) -> None:
        if event.user_id is None:
            self.log.info(
                "analysis.notify.skipped",
                extra={"job_id": event.job_id, "presentation_id": event.presentation_id},
            )
            return
        self.log.info(
            "analysis.notify.completed",
            extra={
                "job_id": event.job_id,
                "presentation_id": event.presentation_id,
                "presentation_title": event.presentation_title,
                "user_id": event.user_id,
            },
        )
