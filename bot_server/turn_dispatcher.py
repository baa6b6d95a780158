"""
Turn dispatcher: inbound activity -> state load -> bot turn -> state save.
"""

from __future__ import annotations

import time

from dialog_engine.bot import SpeakerBot
from dialog_engine.turn import MessageActivity, OutboundMessage, TurnContext
from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter

from .state_store import ConversationStore

emitter = EventEmitter(Component.BOT_SERVER)


class TurnDispatcher:
    def __init__(self, bot: SpeakerBot, store: ConversationStore):
        self.bot = bot
        self.store = store

    async def handle(self, activity: MessageActivity) -> list[OutboundMessage]:
        conversation_id = activity.conversation_id
        logger = get_logger(LogComponent.TURN_DISPATCHER, conversation_id=conversation_id)

        async with self.store.lock(conversation_id):
            state = self.store.load(conversation_id)
            turn = TurnContext(activity)

            emitter.emit(
                "turn.received",
                conversation_id,
                text_length=len(activity.text or ""),
                attachments=len(activity.attachments),
                active_dialog=state.dialog_stack[-1].dialog_name if state.dialog_stack else None,
            )
            start_ts = time.time()

            status = await self.bot.on_turn(turn, state)
            self.store.save(state)

            duration_ms = int((time.time() - start_ts) * 1000)
            emitter.emit(
                "turn.completed",
                conversation_id,
                status=status.value,
                replies=len(turn.outbound),
                depth=len(state.dialog_stack),
                duration_ms=duration_ms,
            )
            logger.info("Turn completed", status=status.value, replies=len(turn.outbound), duration_ms=duration_ms)

        return list(turn.outbound)
