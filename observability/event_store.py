"""
Conversation event store for querying events by conversation_id.

In-memory implementation; a deployment with more than one process would point
the emitter at a log aggregator instead.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_ENVELOPE_KEYS = ("ts", "conversation_id", "component", "event_type", "severity")


@dataclass
class StoredEvent:
    """A conversation event stored in memory."""

    ts: datetime
    conversation_id: str
    component: str
    event_type: str
    severity: str
    payload: Dict[str, Any]  # All other event fields

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "ts": self.ts.isoformat(),
            "conversation_id": self.conversation_id,
            "component": self.component,
            "event_type": self.event_type,
            "severity": self.severity,
        }
        result.update(self.payload)
        return result


class EventStore:
    """
    In-memory event store.

    Events live in a bounded deque (FIFO) so a long-running bot does not grow
    without limit. Default max size: 10,000 events.
    """

    def __init__(self, max_events: int = 10000):
        self._events: deque[StoredEvent] = deque(maxlen=max_events)
        self._max_events = max_events

    def store(self, event: Dict[str, Any]) -> None:
        """Store one emitted event dict."""
        ts_str = event.get("ts")
        if isinstance(ts_str, str):
            ts = datetime.fromisoformat(ts_str.replace("Z", "+00:00"))
        else:
            ts = datetime.now(timezone.utc)

        self._events.append(StoredEvent(
            ts=ts,
            conversation_id=event.get("conversation_id", ""),
            component=event.get("component", "unknown"),
            event_type=event.get("event_type", "unknown"),
            severity=event.get("severity", "info"),
            payload={k: v for k, v in event.items() if k not in _ENVELOPE_KEYS},
        ))

    def query(
        self,
        conversation_id: Optional[str] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query events with optional filters.

        Returns event dicts ordered oldest first, at most ``limit`` of them.
        """
        results: List[StoredEvent] = []

        for event in self._events:
            if conversation_id and event.conversation_id != conversation_id:
                continue
            if event_type and event.event_type != event_type:
                continue
            if component and event.component != component:
                continue

            results.append(event)

            if limit and len(results) >= limit:
                break

        return [e.to_dict() for e in results]

    def clear(self) -> None:
        self._events.clear()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_events": len(self._events),
            "max_events": self._max_events,
            "oldest_event_ts": self._events[0].ts.isoformat() if self._events else None,
            "newest_event_ts": self._events[-1].ts.isoformat() if self._events else None,
        }


# Global event store instance
event_store = EventStore()
