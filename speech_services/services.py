"""
Backend services handed to dialog steps.

Steps never build clients themselves; they reach them through
``dc.services``, which lets tests swap in fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from .attachments import AttachmentFetcher
from .config import ServiceConfig
from .enrollment import EnrollmentSupervisor
from .errors import SpeakerServiceError
from .sentiment import SentimentClient
from .speaker_recognition import SpeakerRecognitionClient
from .speech_to_text import SpeechToTextClient, select_transcriber
from .streaming import StreamingRecognizer, WebSocketRecognitionBackend


@dataclass
class BotServices:
    speaker: Any
    enrollment: Any
    attachments: Any
    recognizer: Optional[Any] = None
    transcriber: Optional[SpeechToTextClient] = None
    sentiment: Optional[Any] = None
    profile_locale: str = "en-US"

    def require(self, name: str) -> Any:
        """Return the named service, or raise when it is not configured."""
        service = getattr(self, name)
        if service is None:
            raise SpeakerServiceError(f"{name} is not configured")
        return service


def build_services(config: ServiceConfig, http: aiohttp.ClientSession) -> BotServices:
    speaker = SpeakerRecognitionClient(http, config.speaker_endpoint, config.speaker_key)
    fetcher = AttachmentFetcher(http)

    recognizer = None
    if config.speaker_streaming_endpoint:
        recognizer = StreamingRecognizer(
            WebSocketRecognitionBackend(
                http,
                config.speaker_streaming_endpoint,
                config.speaker_key,
                step_seconds=config.recognition_step_seconds,
                window_seconds=config.recognition_window_seconds,
                result_timeout_seconds=config.recognition_result_timeout_seconds,
            ),
            chunk_size=config.recognition_chunk_bytes,
            pacing_seconds=config.recognition_pacing_seconds,
        )

    sentiment = None
    if config.sentiment_key:
        sentiment = SentimentClient(http, config.sentiment_endpoint, config.sentiment_key)

    return BotServices(
        speaker=speaker,
        enrollment=EnrollmentSupervisor(
            speaker,
            max_attempts=config.enrollment_max_attempts,
            poll_interval_seconds=config.enrollment_poll_interval_seconds,
        ),
        attachments=fetcher,
        recognizer=recognizer,
        transcriber=select_transcriber(config, http, fetcher),
        sentiment=sentiment,
        profile_locale=config.profile_locale,
    )
