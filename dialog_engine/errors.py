"""
Dialog engine errors and flow-boundary error handling.

Registry misconfiguration (unknown dialog or prompt name) is a programming
error and raises. Everything that goes wrong inside a flow at runtime is
classified into a stable category, reported as an event and turned into a
message for the user; the flow then hands control back to its menu.
"""

from typing import Optional

from observability.events import Component, EventEmitter, Severity
from speech_services.errors import (
    RecognitionStreamError,
    SpeakerServiceError,
    SubmissionError,
    TranscriptionError,
)


class DialogRegistryError(Exception):
    """The dialog graph references something that is not registered."""


class UnknownDialog(DialogRegistryError):
    def __init__(self, dialog_name: str):
        super().__init__(f"Dialog '{dialog_name}' is not registered")
        self.dialog_name = dialog_name


class UnknownPrompt(DialogRegistryError):
    def __init__(self, prompt_name: str):
        super().__init__(f"Prompt '{prompt_name}' is not registered")
        self.prompt_name = prompt_name


class AttachmentError(Exception):
    """The user did not upload a usable .wav attachment."""

    def __init__(self, message: str, missing: bool = False):
        super().__init__(message)
        self.missing = missing


class FlowErrorCategory:
    """Stable error categories for flow-boundary failures."""

    ATTACHMENT_MISSING = "attachment.missing"
    ATTACHMENT_INVALID = "attachment.invalid"

    SUBMISSION_FAILED = "enrollment.submission_failed"
    ENROLLMENT_FAILED = "enrollment.failed"
    ENROLLMENT_TIMED_OUT = "enrollment.timed_out"

    RECOGNITION_FAILED = "recognition.stream_failed"
    TRANSCRIPTION_FAILED = "transcription.failed"
    SERVICE_UNAVAILABLE = "service.unavailable"

    UNKNOWN_ERROR = "unknown_error"


_USER_MESSAGES = {
    FlowErrorCategory.ATTACHMENT_MISSING: "I didn't get the attachment...",
    FlowErrorCategory.ATTACHMENT_INVALID: "I didn't get a .wav file attachment...",
    FlowErrorCategory.SUBMISSION_FAILED: "Enrollment could not be started: '{detail}'.",
    FlowErrorCategory.ENROLLMENT_FAILED: "Enrollment failed with error '{detail}'.",
    FlowErrorCategory.ENROLLMENT_TIMED_OUT: (
        "Enrollment is taking too long to finish. Please try enrolling again later."
    ),
    FlowErrorCategory.RECOGNITION_FAILED: "Recognition failed with error '{detail}'.",
    FlowErrorCategory.TRANSCRIPTION_FAILED: "Speech to text failed with error '{detail}'.",
    FlowErrorCategory.SERVICE_UNAVAILABLE: "The speech service is not available right now: '{detail}'.",
    FlowErrorCategory.UNKNOWN_ERROR: "Something went wrong. Let's start over.",
}


emitter = EventEmitter(Component.DIALOG_ENGINE)


class FlowErrorHandler:
    """Classifies flow failures and produces the user-facing text."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        # Order matters: the specific service errors subclass SpeakerServiceError.
        if isinstance(error, AttachmentError):
            if error.missing:
                return FlowErrorCategory.ATTACHMENT_MISSING
            return FlowErrorCategory.ATTACHMENT_INVALID
        if isinstance(error, SubmissionError):
            return FlowErrorCategory.SUBMISSION_FAILED
        if isinstance(error, RecognitionStreamError):
            return FlowErrorCategory.RECOGNITION_FAILED
        if isinstance(error, TranscriptionError):
            return FlowErrorCategory.TRANSCRIPTION_FAILED
        if isinstance(error, SpeakerServiceError):
            return FlowErrorCategory.SERVICE_UNAVAILABLE
        return FlowErrorCategory.UNKNOWN_ERROR

    @staticmethod
    def handle_error(conversation_id: str, error: Exception, dialog_name: Optional[str] = None) -> str:
        """Classify ``error``, emit a flow.error event and return the user-facing message."""
        return FlowErrorHandler.report(
            conversation_id,
            FlowErrorHandler.classify_error(error),
            detail=str(error),
            dialog_name=dialog_name,
            error_type=type(error).__name__,
        )

    @staticmethod
    def report(
        conversation_id: str,
        category: str,
        detail: str = "",
        dialog_name: Optional[str] = None,
        error_type: Optional[str] = None,
    ) -> str:
        """Emit a flow.error event for an already-classified failure."""
        # Keep credentials out of events and chat replies.
        if "subscription-key" in detail.lower() or "secret" in detail.lower():
            detail = "[redacted]"

        emitter.emit(
            "flow.error",
            conversation_id,
            severity=Severity.WARN if category.startswith("attachment") else Severity.ERROR,
            category=category,
            dialog=dialog_name,
            error_type=error_type,
            detail=detail,
        )

        return FlowErrorHandler.get_user_message(category, detail)

    @staticmethod
    def get_user_message(category: str, detail: str = "") -> str:
        template = _USER_MESSAGES.get(category, _USER_MESSAGES[FlowErrorCategory.UNKNOWN_ERROR])
        return template.format(detail=detail)
