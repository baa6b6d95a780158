"""
Per-conversation state.

One ``ConversationState`` per conversation id: the user's profile fields plus
the dialog stack. Only dialog steps mutate it, and only while the turn for that
conversation is being processed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

from .identity import resolve_profile_id


class EnrollmentStatus(str, Enum):
    """Enrollment status of a voice profile, as reported by the backend."""

    ENROLLING = "Enrolling"
    TRAINING = "Training"
    ENROLLED = "Enrolled"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["EnrollmentStatus"]:
        if not value:
            return None
        for status in cls:
            if status.value.lower() == value.lower():
                return status
        return None


@dataclass
class PendingPrompt:
    """The prompt a frame is suspended on, kept so it can be re-issued."""

    prompt_name: str
    text: str
    choices: tuple[str, ...] = ()
    retry_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_name": self.prompt_name,
            "text": self.text,
            "choices": list(self.choices),
            "retry_text": self.retry_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingPrompt":
        return cls(
            prompt_name=data["prompt_name"],
            text=data["text"],
            choices=tuple(data.get("choices") or ()),
            retry_text=data.get("retry_text"),
        )


@dataclass(eq=False)
class DialogFrame:
    """One active dialog instance on the stack."""

    dialog_name: str
    step_index: int = 0
    prompt: Optional[PendingPrompt] = None

    @property
    def suspended(self) -> bool:
        return self.prompt is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dialog_name": self.dialog_name,
            "step_index": self.step_index,
            "prompt": self.prompt.to_dict() if self.prompt else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DialogFrame":
        prompt = data.get("prompt")
        return cls(
            dialog_name=data["dialog_name"],
            step_index=int(data.get("step_index", 0)),
            prompt=PendingPrompt.from_dict(prompt) if prompt else None,
        )


@dataclass
class ConversationState:
    """Profile fields and dialog stack for a single conversation."""

    conversation_id: str
    profile_id: Optional[UUID] = None
    enrollment_status: Optional[EnrollmentStatus] = None
    known_speakers: set[UUID] = field(default_factory=set)
    selected_action: Optional[str] = None
    dialog_stack: list[DialogFrame] = field(default_factory=list)
    _name: Optional[str] = field(default=None, repr=False)

    @property
    def name(self) -> Optional[str]:
        return self._name

    @name.setter
    def name(self, value: Optional[str]) -> None:
        # An unrecognized name always clears the profile: "never seen".
        self._name = value
        self.profile_id = resolve_profile_id(value)

    def add_known_speakers(self, profile_ids: Iterable[UUID]) -> None:
        self.known_speakers.update(profile_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "name": self._name,
            "profile_id": str(self.profile_id) if self.profile_id else None,
            "enrollment_status": self.enrollment_status.value if self.enrollment_status else None,
            "known_speakers": sorted(str(p) for p in self.known_speakers),
            "selected_action": self.selected_action,
            "dialog_stack": [frame.to_dict() for frame in self.dialog_stack],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationState":
        profile_id = data.get("profile_id")
        # Bypass the name setter: the stored profile id may have been set by a
        # flow (create/delete) after the name was assigned.
        return cls(
            conversation_id=data["conversation_id"],
            profile_id=UUID(profile_id) if profile_id else None,
            enrollment_status=EnrollmentStatus.parse(data.get("enrollment_status")),
            known_speakers={UUID(p) for p in data.get("known_speakers", [])},
            selected_action=data.get("selected_action"),
            dialog_stack=[DialogFrame.from_dict(f) for f in data.get("dialog_stack", [])],
            _name=data.get("name"),
        )
