"""
Prompts: the points where a dialog suspends and waits for user input.

A prompt is issued by a step, the frame suspends, and the next inbound message
is run through ``recognize``. A rejected input never leaves the prompt; the
engine re-issues it on the same frame and step.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from .state import PendingPrompt
from .turn import MessageActivity, TurnContext


@dataclass(frozen=True)
class FoundChoice:
    """The choice a user picked from a ChoicePrompt."""

    value: str
    index: int


@dataclass(frozen=True)
class PromptResult:
    succeeded: bool
    value: Any = None
    # Sent to the user before the prompt is re-issued.
    message: Optional[str] = None

    @classmethod
    def accepted(cls, value: Any) -> "PromptResult":
        return cls(succeeded=True, value=value)

    @classmethod
    def rejected(cls, message: Optional[str] = None) -> "PromptResult":
        return cls(succeeded=False, message=message)


class Prompt:
    """Base prompt: sends plain text, subclasses decide what input is valid."""

    async def issue(self, turn: TurnContext, pending: PendingPrompt, *, retry: bool = False) -> None:
        text = pending.retry_text if retry and pending.retry_text else pending.text
        await turn.send(text)

    def recognize(self, activity: MessageActivity, pending: PendingPrompt) -> PromptResult:
        raise NotImplementedError


class ChoicePrompt(Prompt):
    """Accepts one of the offered labels (case-insensitive) or its 1-based number."""

    async def issue(self, turn: TurnContext, pending: PendingPrompt, *, retry: bool = False) -> None:
        text = pending.retry_text if retry and pending.retry_text else pending.text
        await turn.send_choices(text, pending.choices)

    def recognize(self, activity: MessageActivity, pending: PendingPrompt) -> PromptResult:
        utterance = (activity.text or "").strip()
        if not utterance:
            return PromptResult.rejected()

        lowered = utterance.lower()
        for index, choice in enumerate(pending.choices):
            if choice.lower() == lowered:
                return PromptResult.accepted(FoundChoice(value=choice, index=index))

        if utterance.isdigit():
            index = int(utterance) - 1
            if 0 <= index < len(pending.choices):
                return PromptResult.accepted(FoundChoice(value=pending.choices[index], index=index))

        return PromptResult.rejected()


class TextPrompt(Prompt):
    """Free text checked by a caller-supplied predicate."""

    def __init__(
        self,
        validator: Optional[Callable[[str], bool]] = None,
        invalid_message: Optional[str] = None,
    ):
        self._validator = validator
        self._invalid_message = invalid_message

    def recognize(self, activity: MessageActivity, pending: PendingPrompt) -> PromptResult:
        text = (activity.text or "").strip()
        if not text:
            return PromptResult.rejected()
        if self._validator is not None and not self._validator(text):
            return PromptResult.rejected(self._invalid_message)
        return PromptResult.accepted(text)


class AttachmentPrompt(Prompt):
    """
    Requires at least one attachment.

    Content type and URL are checked by the step consuming the attachments.
    """

    def recognize(self, activity: MessageActivity, pending: PendingPrompt) -> PromptResult:
        if not activity.attachments:
            return PromptResult.rejected()
        return PromptResult.accepted(list(activity.attachments))
