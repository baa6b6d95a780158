"""
Per-conversation state storage and turn serialization.

State is kept as ``ConversationState.to_dict()`` snapshots keyed by
conversation id, so nothing but the snapshot survives between turns. Each
conversation also gets an ``asyncio.Lock``: turns of one conversation run one
at a time, different conversations run in parallel.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dialog_engine.state import ConversationState
from logging_setup import Component, get_logger

logger = get_logger(Component.STATE_STORE)


class ConversationStore:
    """In-memory key-value store of conversation snapshots."""

    def __init__(self):
        # All three maps grow by one entry per conversation and are only emptied by clear().
        self._records: Dict[str, Dict[str, Any]] = {}
        self._updated_at: Dict[str, datetime] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        return lock

    def load(self, conversation_id: str) -> ConversationState:
        """Return the stored state, or a fresh one for a new conversation."""
        record = self._records.get(conversation_id)
        if record is None:
            logger.debug("New conversation", conversation_id=conversation_id)
            return ConversationState(conversation_id=conversation_id)
        return ConversationState.from_dict(record)

    def save(self, state: ConversationState) -> None:
        self._records[state.conversation_id] = state.to_dict()
        self._updated_at[state.conversation_id] = datetime.now(timezone.utc)

    def get_record(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        record = self._records.get(conversation_id)
        return dict(record) if record is not None else None

    def updated_at(self, conversation_id: str) -> Optional[datetime]:
        return self._updated_at.get(conversation_id)

    def list_ids(self) -> List[str]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._updated_at.clear()
        self._locks.clear()


# Global conversation store
conversation_store = ConversationStore()
