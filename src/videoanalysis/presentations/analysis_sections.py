"""Derive presentation sub-records from a completed analysis payload."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

VOICE_FIELDS = (
    "intensity_grade",
    "intensity_db",
    "intensity_text",
    "pitch_grade",
    "pitch_avg",
    "pitch_text",
    "wpm_grade",
    "wpm_avg",
    "wpm_comment",
    "anxiety_grade",
    "anxiety_ratio",
    "anxiety_comment",
)
VOICE_NUMERIC_FIELDS = frozenset(
    {"intensity_db", "pitch_avg", "wpm_avg", "anxiety_ratio"}
)
FEEDBACK_LIST_FIELDS = ("frequent_words", "awkward_sentences", "difficulty_issues")


class InvalidAnalysisPayload(ValueError):
    """Raised when a completed payload carries no analysis data."""


def unwrap_result(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return the analysis body, which may be nested under ``result``."""
    body = payload.get("result") if "result" in payload else payload
    if not isinstance(body, Mapping) or not body:
        raise InvalidAnalysisPayload("analysis payload is empty")
    return dict(body)


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _as_float(key: str, value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("analysis.sections.float_invalid", extra={"field": key, "value": repr(value)})
        return None


def _first_present(body: Mapping[str, Any], *keys: str) -> Any:
    # The analysis service has shipped both "pronunciation" and "pronounciation".
    for key in keys:
        if body.get(key) is not None:
            return body[key]
    return None


def _anxiety_grade(body: Mapping[str, Any]) -> str | None:
    if body.get("anxiety_grade") is not None:
        return _as_text(body["anxiety_grade"])
    analysis = body.get("anxiety_analysis")
    if isinstance(analysis, Mapping):
        return _as_text(analysis.get("grade"))
    return _as_text(analysis)


def voice_section(body: Mapping[str, Any]) -> dict[str, Any]:
    section: dict[str, Any] = {}
    for key in VOICE_FIELDS:
        value = _anxiety_grade(body) if key == "anxiety_grade" else body.get(key)
        section[key] = _as_float(key, value) if key in VOICE_NUMERIC_FIELDS else _as_text(value)
    return section


def transcript_section(body: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "transcription": _as_text(body.get("transcription")),
        "pronunciation_score": _as_float(
            "pronunciation_score",
            _first_present(body, "pronunciation_score", "pronounciation_score"),
        ),
        "pronunciation_grade": _as_text(
            _first_present(body, "pronunciation_grade", "pronounciation_grade")
        ),
        "pronunciation_comment": _as_text(
            _first_present(
                body, "pronunciation_comment", "pronunciation_text", "pronounciation_text"
            )
        ),
        "adjusted_script": _as_text(body.get("adjusted_script")),
        "corrected_script": _as_text(body.get("corrected_transcription")),
    }


def feedback_section(body: Mapping[str, Any]) -> dict[str, Any]:
    feedback = body.get("feedback")
    if not isinstance(feedback, Mapping):
        feedback = {}
    section: dict[str, Any] = {key: feedback.get(key) or [] for key in FEEDBACK_LIST_FIELDS}
    section["predicted_questions"] = body.get("predicted_questions")
    return section


def derive_sections(payload: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Split a completed payload into ``voice``, ``transcript`` and ``feedback``."""
    body = unwrap_result(payload)
    return {
        "voice": voice_section(body),
        "transcript": transcript_section(body),
        "feedback": feedback_section(body),
    }
