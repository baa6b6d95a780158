"""
Menus and the assembled dialog graph.

    MainDialog
      Manage Profiles   -> ManageProfileDialog
                             View / Create / Delete / Enroll Profile, Main menu
      Recognize Speaker -> RecognizeSpeakerDialog
      Speech to Text    -> SpeechToTextDialog
      Analyze text      -> AnalyzeTextDialog
"""

from __future__ import annotations

from typing import Any

from . import flows
from .engine import DialogContext, DialogSet, NextFn, WaterfallStep
from .flows import Dialogs, Prompts
from .prompts import AttachmentPrompt, ChoicePrompt, FoundChoice, TextPrompt

MENU_QUESTION = "What do you want to do?"
MENU_RETRY = "Please select an option."

MAIN_MENU = {
    "Manage Profiles": Dialogs.MANAGE_PROFILE,
    "Recognize Speaker": Dialogs.RECOGNIZE_SPEAKER,
    "Speech to Text": Dialogs.SPEECH_TO_TEXT,
    "Analyze text": Dialogs.ANALYZE_TEXT,
}

PROFILE_MENU = {
    "View Profile": Dialogs.VIEW_PROFILE,
    "Create Profile": Dialogs.CREATE_PROFILE,
    "Delete Profile": Dialogs.DELETE_PROFILE,
    "Enroll Profile": Dialogs.ENROLL_PROFILE,
    "Main menu": Dialogs.MAIN,
}


async def show_main_menu(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    dc.state.selected_action = None
    await dc.prompt(
        Prompts.MANAGE_OR_RECOGNIZE,
        MENU_QUESTION,
        choices=list(MAIN_MENU),
        retry_text=MENU_RETRY,
    )


async def route_main_menu(dc: DialogContext, choice: FoundChoice, next_step: NextFn) -> None:
    dc.state.selected_action = choice.value
    await dc.replace(MAIN_MENU[choice.value])


async def show_profile_menu(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    await dc.prompt(
        Prompts.MANAGE_PROFILE,
        MENU_QUESTION,
        choices=list(PROFILE_MENU),
        retry_text=MENU_RETRY,
    )


async def route_profile_menu(dc: DialogContext, choice: FoundChoice, next_step: NextFn) -> None:
    await dc.replace(PROFILE_MENU[choice.value])


MAIN_STEPS = (
    WaterfallStep(show_main_menu, prompts=(Prompts.MANAGE_OR_RECOGNIZE,)),
    WaterfallStep(route_main_menu, transitions=tuple(MAIN_MENU.values())),
)

PROFILE_MENU_STEPS = (
    WaterfallStep(show_profile_menu, prompts=(Prompts.MANAGE_PROFILE,)),
    WaterfallStep(route_profile_menu, transitions=tuple(PROFILE_MENU.values())),
)


def build_dialog_set() -> DialogSet:
    """Register every prompt and dialog, then verify the graph is closed."""
    dialogs = DialogSet()

    dialogs.add_prompt(Prompts.MANAGE_OR_RECOGNIZE, ChoicePrompt())
    dialogs.add_prompt(Prompts.MANAGE_PROFILE, ChoicePrompt())
    dialogs.add_prompt(
        Prompts.NAME,
        TextPrompt(flows.name_validator, "Your name should be at least 2 characters long."),
    )
    dialogs.add_prompt(
        Prompts.ANALYZE_TEXT,
        TextPrompt(flows.sentence_validator, "Your sentence should be at least 4 characters long."),
    )
    dialogs.add_prompt(Prompts.RECOGNIZE_THIS, AttachmentPrompt())
    dialogs.add_prompt(Prompts.RECOGNIZE_THIS_TTS, AttachmentPrompt())
    dialogs.add_prompt(Prompts.ENROLL_PROFILE, AttachmentPrompt())

    dialogs.add_dialog(Dialogs.MAIN, MAIN_STEPS)
    dialogs.add_dialog(Dialogs.MANAGE_PROFILE, PROFILE_MENU_STEPS)
    dialogs.add_dialog(Dialogs.VIEW_PROFILE, flows.VIEW_PROFILE_STEPS)
    dialogs.add_dialog(Dialogs.CREATE_PROFILE, flows.CREATE_PROFILE_STEPS)
    dialogs.add_dialog(Dialogs.DELETE_PROFILE, flows.DELETE_PROFILE_STEPS)
    dialogs.add_dialog(Dialogs.ENROLL_PROFILE, flows.ENROLL_PROFILE_STEPS)
    dialogs.add_dialog(Dialogs.RECOGNIZE_SPEAKER, flows.RECOGNIZE_SPEAKER_STEPS)
    dialogs.add_dialog(Dialogs.SPEECH_TO_TEXT, flows.SPEECH_TO_TEXT_STEPS)
    dialogs.add_dialog(Dialogs.ANALYZE_TEXT, flows.ANALYZE_TEXT_STEPS)

    dialogs.verify()
    return dialogs
