"""
Enrollment Supervisor.

Submits enrollment audio once, then polls the returned operation with a fixed
delay until it succeeds, fails, or the attempt budget runs out:

    submit -> (sleep, poll) x N -> Success | Failed(message) | TimedOut

A submission failure is not retried. A ``failed`` poll status ends the loop
immediately; only non-terminal statuses consume attempts.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol
from uuid import UUID

from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter, Severity

from .errors import SubmissionError
from .speaker_recognition import OperationResult, OperationStatus

emitter = EventEmitter(Component.ENROLLMENT)


class EnrollmentBackend(Protocol):
    async def submit_enrollment(self, audio: bytes, profile_id: UUID) -> str: ...

    async def poll_enrollment(self, polling_handle: str) -> OperationResult: ...


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class EnrollmentOutcome:
    kind: OutcomeKind
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


@dataclass
class EnrollmentJob:
    """One in-flight enrollment. Never persisted."""

    profile_id: UUID
    polling_handle: str
    remaining_attempts: int
    status: OperationStatus = OperationStatus.NOT_STARTED


class EnrollmentSupervisor:
    def __init__(
        self,
        client: EnrollmentBackend,
        max_attempts: int = 10,
        poll_interval_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._client = client
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval_seconds
        self._sleep = sleep

    async def enroll(
        self,
        audio: bytes,
        profile_id: UUID,
        *,
        conversation_id: str = "",
    ) -> EnrollmentOutcome:
        logger = get_logger(LogComponent.ENROLLMENT, conversation_id=conversation_id or None)

        try:
            polling_handle = await self._client.submit_enrollment(audio, profile_id)
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(f"Enrollment could not be submitted: {e}") from e

        job = EnrollmentJob(
            profile_id=profile_id,
            polling_handle=polling_handle,
            remaining_attempts=self._max_attempts,
        )
        emitter.emit(
            "enrollment.submitted",
            conversation_id,
            profile_id=str(profile_id),
            max_attempts=self._max_attempts,
            poll_interval_seconds=self._poll_interval,
        )

        while job.remaining_attempts > 0:
            await self._sleep(self._poll_interval)
            result = await self._client.poll_enrollment(job.polling_handle)
            job.status = result.status

            attempt = self._max_attempts - job.remaining_attempts + 1
            emitter.emit(
                "enrollment.polled",
                conversation_id,
                severity=Severity.DEBUG,
                profile_id=str(profile_id),
                attempt=attempt,
                status=result.status.value,
            )

            if result.status == OperationStatus.SUCCEEDED:
                return self._finish(conversation_id, job, EnrollmentOutcome(OutcomeKind.SUCCESS))

            if result.status == OperationStatus.FAILED:
                logger.warning("Enrollment failed", profile_id=str(profile_id), failure_message=result.message)
                return self._finish(
                    conversation_id,
                    job,
                    EnrollmentOutcome(OutcomeKind.FAILED, result.message or "Enrollment failed"),
                )

            job.remaining_attempts -= 1

        logger.warning(
            "Enrollment timed out",
            profile_id=str(profile_id),
            attempts=self._max_attempts,
            waited_seconds=self._max_attempts * self._poll_interval,
        )
        return self._finish(conversation_id, job, EnrollmentOutcome(OutcomeKind.TIMED_OUT))

    def _finish(self, conversation_id: str, job: EnrollmentJob, outcome: EnrollmentOutcome) -> EnrollmentOutcome:
        attempts_used = self._max_attempts - job.remaining_attempts
        if outcome.kind != OutcomeKind.TIMED_OUT:
            attempts_used += 1  # the terminal poll was not counted down
        emitter.emit(
            "enrollment.completed",
            conversation_id,
            severity=Severity.INFO if outcome.succeeded else Severity.WARN,
            profile_id=str(job.profile_id),
            outcome=outcome.kind.value,
            message=outcome.message,
            attempts_used=attempts_used,
        )
        return outcome
