"""Errors raised by the remote speech service clients and workflows."""

from typing import Optional


class SpeakerServiceError(Exception):
    """A remote speech/speaker service call failed."""

    def __init__(self, message: str, status: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.detail = detail


class SubmissionError(SpeakerServiceError):
    """The enrollment job could not be created. Not retried."""


class RecognitionStreamError(SpeakerServiceError):
    """The streaming recognition session failed while open."""


class TranscriptionError(SpeakerServiceError):
    """Speech-to-text could not produce a transcript."""
