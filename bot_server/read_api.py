"""
Read API for conversations.

- GET /conversations                  list conversation summaries
- GET /conversations/{id}             stored state of one conversation
- GET /conversations/{id}/events      structured events of one conversation
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from observability.event_store import event_store

from .state_store import ConversationStore

router = APIRouter(prefix="/conversations", tags=["conversations"])


class ConversationSummary(BaseModel):
    conversation_id: str
    name: Optional[str] = None
    profile_id: Optional[str] = None
    selected_action: Optional[str] = None
    active_dialog: Optional[str] = None
    depth: int = 0
    updated_at: Optional[str] = None


class ConversationDetail(ConversationSummary):
    enrollment_status: Optional[str] = None
    known_speakers: List[str] = Field(default_factory=list)
    dialog_stack: List[Dict[str, Any]] = Field(default_factory=list)


def _store(request: Request) -> ConversationStore:
    return request.app.state.store


def _summary_fields(store: ConversationStore, conversation_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
    stack = record.get("dialog_stack") or []
    updated_at = store.updated_at(conversation_id)
    return {
        "conversation_id": conversation_id,
        "name": record.get("name"),
        "profile_id": record.get("profile_id"),
        "selected_action": record.get("selected_action"),
        "active_dialog": stack[-1]["dialog_name"] if stack else None,
        "depth": len(stack),
        "updated_at": updated_at.isoformat() if updated_at else None,
    }


@router.get("", response_model=List[ConversationSummary])
async def list_conversations(request: Request) -> List[ConversationSummary]:
    store = _store(request)
    summaries = []
    for conversation_id in store.list_ids():
        record = store.get_record(conversation_id)
        if record is not None:
            summaries.append(ConversationSummary(**_summary_fields(store, conversation_id, record)))
    return summaries


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: str, request: Request) -> ConversationDetail:
    store = _store(request)
    record = store.get_record(conversation_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    return ConversationDetail(
        **_summary_fields(store, conversation_id, record),
        enrollment_status=record.get("enrollment_status"),
        known_speakers=record.get("known_speakers") or [],
        dialog_stack=record.get("dialog_stack") or [],
    )


@router.get("/{conversation_id}/events")
async def get_conversation_events(
    conversation_id: str,
    request: Request,
    event_type: Optional[str] = Query(None, description="Filter by event_type"),
    component: Optional[str] = Query(None, description="Filter by component"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max events to return"),
) -> dict:
    if _store(request).get_record(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    events = event_store.query(
        conversation_id=conversation_id,
        event_type=event_type,
        component=component,
        limit=limit,
    )
    return {"conversation_id": conversation_id, "events": events, "count": len(events)}
