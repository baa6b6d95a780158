"""
HTTP host for the bot.

POST /api/messages receives an inbound activity, runs one turn and returns the
replies produced during that turn. The speech service clients share one
aiohttp session that lives as long as the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional

import aiohttp
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from dialog_engine.bot import SpeakerBot
from dialog_engine.menus import build_dialog_set
from dialog_engine.turn import Attachment, MessageActivity
from logging_setup import Component, get_logger
from speech_services.config import get_config
from speech_services.services import build_services

from .read_api import router as conversations_router
from .state_store import ConversationStore, conversation_store
from .turn_dispatcher import TurnDispatcher

logger = get_logger(Component.BOT_SERVER)


class AttachmentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_type: str = Field(..., alias="contentType")
    content_url: Optional[str] = Field(None, alias="contentUrl")
    name: Optional[str] = None


class ConversationRef(BaseModel):
    id: str = Field(..., min_length=1)


class ActivityIn(BaseModel):
    """Inbound activity (Bot Framework style, only the fields the bot reads)."""

    type: str = "message"
    text: Optional[str] = None
    conversation: ConversationRef
    attachments: List[AttachmentIn] = Field(default_factory=list)

    def to_message(self) -> MessageActivity:
        return MessageActivity(
            conversation_id=self.conversation.id,
            text=self.text or "",
            attachments=tuple(
                Attachment(content_type=a.content_type, content_url=a.content_url, name=a.name)
                for a in self.attachments
            ),
        )


class Reply(BaseModel):
    text: str
    choices: List[str] = Field(default_factory=list)


class TurnResponse(BaseModel):
    conversation_id: str
    replies: List[Reply] = Field(default_factory=list)


def create_app(
    dispatcher: Optional[TurnDispatcher] = None,
    store: Optional[ConversationStore] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    With no dispatcher the real speech services are wired up at startup from
    the environment; tests pass a dispatcher built on fakes.
    """
    store = store or (dispatcher.store if dispatcher else conversation_store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.dispatcher is not None:
            yield
            return

        config = get_config()
        timeout = aiohttp.ClientTimeout(total=config.http_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as http:
            bot = SpeakerBot(build_dialog_set(), build_services(config, http))
            app.state.dispatcher = TurnDispatcher(bot, store)
            logger.info("Bot started", speaker_endpoint=config.speaker_endpoint)
            try:
                yield
            finally:
                app.state.dispatcher = None
                logger.info("Bot stopped")

    app = FastAPI(title="HaBot", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.state.store = store
    app.include_router(conversations_router)

    @app.post("/api/messages", response_model=TurnResponse)
    async def messages(activity: ActivityIn):
        if activity.type != "message":
            logger.debug("Ignoring non-message activity", activity_type=activity.type)
            return TurnResponse(conversation_id=activity.conversation.id)

        try:
            outbound = await app.state.dispatcher.handle(activity.to_message())
        except Exception as e:
            # Don't crash - log and return error
            logger.exception(
                "Turn failed",
                conversation_id=activity.conversation.id,
                error_type=type(e).__name__,
            )
            return JSONResponse(status_code=500, content={"error": "turn_failed"})

        return TurnResponse(
            conversation_id=activity.conversation.id,
            replies=[Reply(text=m.text, choices=list(m.choices)) for m in outbound],
        )

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "ok", "component": "bot_server"}

    return app


app = create_app()
