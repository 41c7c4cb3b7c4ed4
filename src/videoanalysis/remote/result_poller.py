"""Poll the remote analysis service until a job reaches a terminal state."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class PollOutcome(StrEnum):
    COMPLETED = "completed"
    ERROR = "error"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"


@dataclass(frozen=True, slots=True)
class PollResult:
    """Terminal observation of a remote job."""

    outcome: PollOutcome
    attempts: int
    payload: dict[str, Any] | None = None
    error: str | None = None


@dataclass(slots=True)
class ResultPoller:
    """GET ``/result/{remote_job_id}`` at a fixed interval up to a ceiling.

    Transport failures, non-2xx responses and undecodable bodies are logged
    and count as an attempt; they never end the loop early.
    """

    base_url: str
    interval_seconds: float = 5.0
    max_attempts: int = 240
    request_timeout_seconds: float = 30.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    transport: httpx.AsyncBaseTransport | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def poll(self, job_id: str, remote_job_id: str) -> PollResult:
        self.log.info(
            "analysis.poll.start",
            extra={"job_id": job_id, "remote_job_id": remote_job_id, "max_attempts": self.max_attempts},
        )
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.request_timeout_seconds,
            transport=self.transport,
        ) as client:
            for attempt in range(1, self.max_attempts + 1):
                result = await self._observe(client, job_id, remote_job_id, attempt)
                if result is not None:
                    return result
                if attempt < self.max_attempts:
                    await self.sleep(self.interval_seconds)

        self.log.error(
            "analysis.poll.timeout",
            extra={"job_id": job_id, "remote_job_id": remote_job_id, "attempts": self.max_attempts},
        )
        return PollResult(PollOutcome.TIMEOUT, attempts=self.max_attempts)

    async def _observe(
        self,
        client: httpx.AsyncClient,
        job_id: str,
        remote_job_id: str,
        attempt: int,
    ) -> PollResult | None:
        context = {"job_id": job_id, "remote_job_id": remote_job_id, "attempt": attempt}
        try:
            response = await client.get(f"/result/{remote_job_id}")
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.log.warning("analysis.poll.request_failed", extra={**context, "error": repr(exc)})
            return None

        if not isinstance(body, dict):
            self.log.warning("analysis.poll.body_invalid", extra=context)
            return None

        status = body.get("status")
        if status == "processing":
            self.log.debug("analysis.poll.processing", extra=context)
            return None
        if status == "completed":
            payload = body.get("result")
            if not isinstance(payload, dict):
                self.log.warning("analysis.poll.result_missing", extra=context)
                payload = {}
            self.log.info("analysis.poll.completed", extra=context)
            return PollResult(PollOutcome.COMPLETED, attempts=attempt, payload=payload)
        if status == "error":
            error = body.get("error")
            self.log.error("analysis.poll.remote_error", extra={**context, "error": error})
            return PollResult(
                PollOutcome.ERROR,
                attempts=attempt,
                error=str(error) if error is not None else "unknown error",
            )
        if status == "not_found":
            self.log.warning("analysis.poll.not_found", extra=context)
            return PollResult(PollOutcome.NOT_FOUND, attempts=attempt)

        self.log.warning("analysis.poll.unknown_status", extra={**context, "status": status})
        return None
