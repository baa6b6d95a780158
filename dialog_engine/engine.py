"""
Dialog registry and stack engine.

A ``DialogSet`` maps dialog names to ordered waterfall steps and prompt names
to prompts. It is built once, verified, and then used to create one
``DialogContext`` per turn. The context runs steps against the conversation's
dialog stack:

- ``begin``     push a frame at step 0 and run it
- ``continue_dialog``  resume the top frame with the turn's message
- ``replace``   pop the top frame, then ``begin`` (stack never grows)
- ``prompt``    suspend the top frame until the next message
- ``end``       pop the top frame and resume the one below it

A step that neither prompts, calls ``next``, nor transfers control ends its
dialog.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter

from .errors import UnknownDialog, UnknownPrompt
from .prompts import Prompt
from .state import ConversationState, DialogFrame, PendingPrompt
from .turn import TurnContext

NextFn = Callable[..., Awaitable[None]]
StepFn = Callable[["DialogContext", Any, NextFn], Awaitable[None]]


@dataclass(frozen=True)
class WaterfallStep:
    """
    One step of a waterfall dialog.

    ``prompts`` and ``transitions`` declare which prompt and dialog names the
    step may use, so a misspelled name fails at ``DialogSet.verify()`` instead
    of in the middle of a conversation.
    """

    run: StepFn
    prompts: tuple[str, ...] = ()
    transitions: tuple[str, ...] = ()


class DialogTurnStatus(str, Enum):
    EMPTY = "empty"          # nothing on the stack to continue
    WAITING = "waiting"      # a frame is suspended on a prompt
    COMPLETE = "complete"    # the stack ran empty during this turn


emitter = EventEmitter(Component.DIALOG_ENGINE)


class DialogSet:
    """Registry of named dialogs and prompts."""

    def __init__(self) -> None:
        self._dialogs: dict[str, tuple[WaterfallStep, ...]] = {}
        self._prompts: dict[str, Prompt] = {}

    def add_dialog(self, name: str, steps: Sequence[Union[WaterfallStep, StepFn]]) -> "DialogSet":
        if name in self._dialogs or name in self._prompts:
            raise ValueError(f"'{name}' is already registered")
        if not steps:
            raise ValueError(f"Dialog '{name}' needs at least one step")
        self._dialogs[name] = tuple(
            step if isinstance(step, WaterfallStep) else WaterfallStep(run=step) for step in steps
        )
        return self

    def add_prompt(self, name: str, prompt: Prompt) -> "DialogSet":
        if name in self._prompts or name in self._dialogs:
            raise ValueError(f"'{name}' is already registered")
        self._prompts[name] = prompt
        return self

    @property
    def dialog_names(self) -> tuple[str, ...]:
        return tuple(self._dialogs)

    def find_dialog(self, name: str) -> tuple[WaterfallStep, ...]:
        try:
            return self._dialogs[name]
        except KeyError:
            raise UnknownDialog(name) from None

    def find_prompt(self, name: str) -> Prompt:
        try:
            return self._prompts[name]
        except KeyError:
            raise UnknownPrompt(name) from None

    def verify(self) -> None:
        """Raise UnknownDialog/UnknownPrompt if any step declares an unregistered name."""
        for steps in self._dialogs.values():
            for step in steps:
                for prompt_name in step.prompts:
                    self.find_prompt(prompt_name)
                for dialog_name in step.transitions:
                    self.find_dialog(dialog_name)

    def create_context(
        self,
        turn: TurnContext,
        state: ConversationState,
        services: Any = None,
    ) -> "DialogContext":
        return DialogContext(self, state, turn, services)


class DialogContext:
    """Runs the dialog stack of one conversation for one turn."""

    def __init__(
        self,
        dialogs: DialogSet,
        state: ConversationState,
        turn: TurnContext,
        services: Any = None,
    ):
        self.dialogs = dialogs
        self.state = state
        self.turn = turn
        self.services = services
        self.logger = get_logger(LogComponent.DIALOG_ENGINE, conversation_id=turn.conversation_id)

    @property
    def stack(self) -> list[DialogFrame]:
        return self.state.dialog_stack

    @property
    def active_frame(self) -> Optional[DialogFrame]:
        return self.stack[-1] if self.stack else None

    async def begin(self, dialog_name: str, args: Any = None) -> None:
        self.dialogs.find_dialog(dialog_name)

        frame = DialogFrame(dialog_name=dialog_name)
        self.stack.append(frame)
        self._emit("dialog.begun", dialog=dialog_name, depth=len(self.stack))

        await self._run_step(frame, args)

    async def replace(self, dialog_name: str, args: Any = None) -> None:
        # Look the target up before popping so a bad name leaves the stack intact.
        self.dialogs.find_dialog(dialog_name)

        replaced = self.stack.pop() if self.stack else None
        self._emit(
            "dialog.replaced",
            from_dialog=replaced.dialog_name if replaced else None,
            to_dialog=dialog_name,
        )
        await self.begin(dialog_name, args)

    async def continue_dialog(self) -> DialogTurnStatus:
        frame = self.active_frame
        if frame is None:
            return DialogTurnStatus.EMPTY

        if frame.prompt is not None:
            pending = frame.prompt
            prompt = self.dialogs.find_prompt(pending.prompt_name)
            result = prompt.recognize(self.turn.activity, pending)

            if not result.succeeded:
                self._emit(
                    "prompt.rejected",
                    prompt=pending.prompt_name,
                    dialog=frame.dialog_name,
                    step=frame.step_index,
                )
                if result.message:
                    await self.turn.send(result.message)
                await prompt.issue(self.turn, pending, retry=True)
                return DialogTurnStatus.WAITING

            frame.prompt = None
            value = result.value
        else:
            # Not suspended (a previous turn failed mid-step): hand the raw text on.
            value = self.turn.activity.text

        await self._advance(frame, value)
        return DialogTurnStatus.WAITING if self.stack else DialogTurnStatus.COMPLETE

    async def prompt(
        self,
        prompt_name: str,
        text: str,
        *,
        choices: Sequence[str] = (),
        retry_text: Optional[str] = None,
    ) -> None:
        prompt = self.dialogs.find_prompt(prompt_name)
        frame = self.active_frame
        if frame is None:
            raise RuntimeError("prompt() called with an empty dialog stack")

        pending = PendingPrompt(
            prompt_name=prompt_name,
            text=text,
            choices=tuple(choices),
            retry_text=retry_text,
        )
        frame.prompt = pending
        self._emit("prompt.issued", prompt=prompt_name, dialog=frame.dialog_name, step=frame.step_index)
        await prompt.issue(self.turn, pending)

    async def end(self, result: Any = None) -> None:
        frame = self.active_frame
        if frame is not None:
            await self._end_frame(frame, result)

    async def _run_step(self, frame: DialogFrame, args: Any) -> None:
        steps = self.dialogs.find_dialog(frame.dialog_name)
        index = frame.step_index

        async def next_step(value: Any = None) -> None:
            if frame.step_index != index or self.active_frame is not frame:
                raise RuntimeError(
                    f"next() is only valid from the running step of '{frame.dialog_name}'"
                )
            await self._advance(frame, value)

        self.logger.debug("Running step", dialog=frame.dialog_name, step=index)
        await steps[index].run(self, args, next_step)

        if frame.step_index != index:
            return  # next() already ran the rest of the waterfall
        if not self._on_stack(frame):
            return  # replaced or ended
        if frame.suspended or self.active_frame is not frame:
            return  # waiting on a prompt, or a child dialog is waiting

        await self._end_frame(frame, None)

    async def _advance(self, frame: DialogFrame, value: Any) -> None:
        steps = self.dialogs.find_dialog(frame.dialog_name)
        frame.step_index += 1
        if frame.step_index < len(steps):
            await self._run_step(frame, value)
        else:
            await self._end_frame(frame, value)

    async def _end_frame(self, frame: DialogFrame, result: Any) -> None:
        if self.active_frame is not frame:
            raise RuntimeError(f"Dialog '{frame.dialog_name}' is not the active dialog")

        self.stack.pop()
        self._emit("dialog.ended", dialog=frame.dialog_name, depth=len(self.stack))

        parent = self.active_frame
        if parent is not None and not parent.suspended:
            await self._advance(parent, result)

    def _on_stack(self, frame: DialogFrame) -> bool:
        return any(f is frame for f in self.stack)

    def _emit(self, event_type: str, **fields: Any) -> None:
        emitter.emit(event_type, self.turn.conversation_id, **fields)
