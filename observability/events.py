"""
Structured conversation events (shared).

Used by the bot server, the dialog engine and the speech workflows. Every event
is one JSON line on stdout and is kept in the in-memory event store for the
read API.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .event_store import event_store


class Component(str, Enum):
    """Event-producing components."""

    BOT_SERVER = "bot_server"
    DIALOG_ENGINE = "dialog_engine"
    ENROLLMENT = "enrollment"
    RECOGNITION = "recognition"


class Severity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventEmitter:
    """Emits structured JSON events for one component."""

    def __init__(self, component: Component):
        self.component = component

    def emit(
        self,
        event_type: str,
        conversation_id: str,
        severity: Severity = Severity.INFO,
        **kwargs: Any,
    ) -> None:
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "conversation_id": conversation_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
        }
        event.update(kwargs)

        sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
        sys.stdout.write("\n")
        sys.stdout.flush()

        event_store.store(event)
