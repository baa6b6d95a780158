"""
Speaker Recognition REST client.

Profile management and enrollment against the Speaker Identification API:

- create / get / list / delete identification profiles
- submit enrollment audio (returns the Operation-Location polling handle)
- poll an enrollment operation

All calls share one aiohttp session owned by the caller and log latency_ms.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import aiohttp

from dialog_engine.state import EnrollmentStatus
from logging_setup import Component, get_logger

from .errors import SpeakerServiceError, SubmissionError

logger = get_logger(Component.SPEAKER_CLIENT)

SUBSCRIPTION_KEY_HEADER = "Ocp-Apim-Subscription-Key"


class OperationStatus(str, Enum):
    NOT_STARTED = "notstarted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OperationStatus":
        # Unknown values count as still running; the poll loop bounds them.
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.RUNNING


@dataclass(frozen=True)
class Profile:
    profile_id: UUID
    enrollment_status: Optional[EnrollmentStatus]
    remaining_seconds: float = 0.0

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "Profile":
        return cls(
            profile_id=UUID(data["identificationProfileId"]),
            enrollment_status=EnrollmentStatus.parse(data.get("enrollmentStatus")),
            remaining_seconds=float(data.get("remainingEnrollmentSpeechSeconds") or 0.0),
        )


@dataclass(frozen=True)
class OperationResult:
    status: OperationStatus
    message: Optional[str] = None


class SpeakerRecognitionClient:
    """Async client for the speaker identification profile + enrollment API."""

    def __init__(self, session: aiohttp.ClientSession, endpoint: str, subscription_key: str):
        self._session = session
        self._endpoint = endpoint.rstrip("/")
        self._headers = {SUBSCRIPTION_KEY_HEADER: subscription_key}

    async def create_profile(self, locale: str = "en-US") -> UUID:
        data = await self._request(
            "POST", "/identificationProfiles", operation="create_profile", json={"locale": locale}
        )
        return UUID(data["identificationProfileId"])

    async def delete_profile(self, profile_id: UUID) -> None:
        await self._request("DELETE", f"/identificationProfiles/{profile_id}", operation="delete_profile")

    async def get_profile(self, profile_id: UUID) -> Profile:
        data = await self._request("GET", f"/identificationProfiles/{profile_id}", operation="get_profile")
        return Profile.from_json(data)

    async def list_profiles(self) -> list[Profile]:
        data = await self._request("GET", "/identificationProfiles", operation="list_profiles")
        return [Profile.from_json(item) for item in data or []]

    async def submit_enrollment(self, audio: bytes, profile_id: UUID) -> str:
        """Upload enrollment audio; returns the URL to poll for the operation result."""
        url = f"{self._endpoint}/identificationProfiles/{profile_id}/enroll"
        start_ts = time.time()
        headers = {**self._headers, "Content-Type": "application/octet-stream"}

        try:
            async with self._session.post(url, data=audio, headers=headers) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                if resp.status != 202:
                    error_text = await resp.text()
                    logger.error(
                        "Enrollment submission rejected",
                        profile_id=str(profile_id),
                        status=resp.status,
                        latency_ms=latency_ms,
                    )
                    raise SubmissionError(
                        f"Enrollment submission failed: {resp.status}",
                        status=resp.status,
                        detail=error_text,
                    )

                location = resp.headers.get("Operation-Location")
                if not location:
                    raise SubmissionError("Enrollment submission returned no Operation-Location")

                logger.info(
                    "Enrollment submitted",
                    profile_id=str(profile_id),
                    audio_bytes=len(audio),
                    latency_ms=latency_ms,
                )
                return location
        except asyncio.TimeoutError as e:
            raise SubmissionError("Enrollment submission timed out") from e
        except aiohttp.ClientError as e:
            raise SubmissionError(f"Enrollment submission failed: {e}") from e

    async def poll_enrollment(self, polling_handle: str) -> OperationResult:
        data = await self._request("GET", polling_handle, operation="poll_enrollment", absolute=True)
        return OperationResult(
            status=OperationStatus.parse(data.get("status")),
            message=data.get("message"),
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        absolute: bool = False,
        **kwargs: Any,
    ) -> Any:
        url = path if absolute else f"{self._endpoint}{path}"
        start_ts = time.time()
        try:
            async with self._session.request(method, url, headers=self._headers, **kwargs) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                if resp.status >= 300:
                    error_text = await resp.text()
                    logger.error(
                        "Speaker Recognition error",
                        operation=operation,
                        status=resp.status,
                        latency_ms=latency_ms,
                    )
                    raise SpeakerServiceError(
                        f"Speaker Recognition {operation} failed: {resp.status}",
                        status=resp.status,
                        detail=error_text,
                    )

                logger.info(
                    "Speaker Recognition call completed",
                    operation=operation,
                    status=resp.status,
                    latency_ms=latency_ms,
                )
                if resp.content_length == 0 or resp.status == 204:
                    return None
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(
                "Speaker Recognition request failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            raise SpeakerServiceError(
                f"Speaker Recognition {operation} failed: {str(e) or 'timed out'}"
            ) from e
