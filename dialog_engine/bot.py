"""
Bot turn entry point.

``SpeakerBot.on_turn`` takes one inbound message plus the conversation's state
and runs it through the dialog stack. When the stack has nothing to say (a new
conversation, or a flow that ended without handing off) the main menu starts.
"""

from __future__ import annotations

from typing import Any

from logging_setup import Component, get_logger

from .engine import DialogSet, DialogTurnStatus
from .errors import DialogRegistryError, FlowErrorHandler
from .flows import Dialogs
from .state import ConversationState
from .turn import TurnContext


class SpeakerBot:
    def __init__(self, dialogs: DialogSet, services: Any = None):
        self.dialogs = dialogs
        self.services = services

    async def on_turn(self, turn: TurnContext, state: ConversationState) -> DialogTurnStatus:
        logger = get_logger(Component.DIALOG_ENGINE, conversation_id=turn.conversation_id)
        dc = self.dialogs.create_context(turn, state, self.services)

        try:
            status = await dc.continue_dialog()

            if not turn.responded and (not state.selected_action or not state.dialog_stack):
                state.selected_action = None
                await dc.begin(Dialogs.MAIN)
                status = DialogTurnStatus.WAITING
        except DialogRegistryError:
            # Broken dialog graph: not something the user can recover from.
            raise
        except Exception as e:
            logger.exception(
                "Unhandled error in dialog turn",
                error=str(e),
                error_type=type(e).__name__,
                stack=[frame.dialog_name for frame in state.dialog_stack],
            )
            # Never leave the conversation suspended in a half-run flow.
            state.dialog_stack.clear()
            state.selected_action = None
            await turn.send(FlowErrorHandler.handle_error(turn.conversation_id, e))
            await dc.begin(Dialogs.MAIN)
            status = DialogTurnStatus.WAITING

        logger.debug("Turn processed", status=status.value, depth=len(state.dialog_stack))
        return status
