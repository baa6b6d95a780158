"""
Turn-level I/O for the dialog engine.

An inbound message activity comes in, zero or more outbound messages go out.
The host decides how outbound messages reach the user; the engine only
collects them (and optionally forwards each one as it is produced).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

WAV_CONTENT_TYPE = "audio/wav"


@dataclass(frozen=True)
class Attachment:
    """A file the user attached to a message."""

    content_type: str
    content_url: Optional[str] = None
    name: Optional[str] = None

    def is_wav(self) -> bool:
        return self.content_type == WAV_CONTENT_TYPE and bool((self.content_url or "").strip())


@dataclass(frozen=True)
class MessageActivity:
    """An inbound user message."""

    conversation_id: str
    text: str = ""
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class OutboundMessage:
    """A bot reply: plain text, optionally with choice labels to render."""

    text: str
    choices: tuple[str, ...] = ()


SendHook = Callable[[OutboundMessage], Awaitable[None]]


@dataclass
class TurnContext:
    """Collects everything the bot says while processing one activity."""

    activity: MessageActivity
    on_send: Optional[SendHook] = None
    outbound: list[OutboundMessage] = field(default_factory=list)

    @property
    def conversation_id(self) -> str:
        return self.activity.conversation_id

    @property
    def responded(self) -> bool:
        return bool(self.outbound)

    async def send(self, text: str) -> None:
        await self._deliver(OutboundMessage(text=text))

    async def send_choices(self, text: str, choices: list[str] | tuple[str, ...]) -> None:
        await self._deliver(OutboundMessage(text=text, choices=tuple(choices)))

    async def _deliver(self, message: OutboundMessage) -> None:
        self.outbound.append(message)
        if self.on_send is not None:
            await self.on_send(message)
