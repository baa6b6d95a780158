"""
Leaf flows: profile management, speaker recognition, speech to text and text
sentiment.

Every flow hands control back to a menu with ``replace`` when it is done.
Attachment problems and speech service failures are caught here, at the flow
boundary, reported through ``FlowErrorHandler`` and shown to the user; the flow
then returns to its menu instead of leaving the conversation suspended.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence
from uuid import UUID

from speech_services.enrollment import OutcomeKind
from speech_services.errors import SpeakerServiceError

from .engine import DialogContext, NextFn, WaterfallStep
from .errors import AttachmentError, FlowErrorCategory, FlowErrorHandler
from .state import EnrollmentStatus
from .turn import Attachment


class Dialogs:
    MAIN = "MainDialog"
    MANAGE_PROFILE = "ManageProfileDialog"
    RECOGNIZE_SPEAKER = "RecognizeSpeakerDialog"
    SPEECH_TO_TEXT = "SpeechToTextDialog"
    ANALYZE_TEXT = "AnalyzeTextDialog"
    VIEW_PROFILE = "ViewProfileDialog"
    CREATE_PROFILE = "CreateProfileDialog"
    DELETE_PROFILE = "DeleteProfileDialog"
    ENROLL_PROFILE = "EnrollProfileDialog"


class Prompts:
    MANAGE_OR_RECOGNIZE = "manageOrRecognizePrompt"
    MANAGE_PROFILE = "managePrompt"
    RECOGNIZE_THIS = "recognizeThisPrompt"
    RECOGNIZE_THIS_TTS = "recognizeThisTTSPrompt"
    ANALYZE_TEXT = "analyzeTextPrompt"
    NAME = "namePrompt"
    ENROLL_PROFILE = "enrollProfilePrompt"


UPLOAD_WAV = "Please upload a .wav file"
NOT_RECOGNIZED = "Could not recognize"


def name_validator(text: str) -> bool:
    return len(text) > 2


def sentence_validator(text: str) -> bool:
    return len(text) > 4


def require_wav_attachment(attachments: Optional[Sequence[Attachment]]) -> Attachment:
    """First attachment, which must be a .wav file with a URL."""
    attachment = attachments[0] if attachments else None
    if attachment is None:
        raise AttachmentError("No attachment received", missing=True)
    if not attachment.is_wav():
        raise AttachmentError(f"Unsupported attachment '{attachment.content_type}'")
    return attachment


async def abort_flow(dc: DialogContext, error: Exception, return_to: str) -> None:
    """Report a flow failure to the user and hand control back to ``return_to``."""
    frame = dc.active_frame
    message = FlowErrorHandler.handle_error(
        dc.turn.conversation_id,
        error,
        dialog_name=frame.dialog_name if frame else None,
    )
    await dc.turn.send(message)
    await dc.replace(return_to)


# --- Shared first step: make sure we know who we are talking to ---------------

async def ask_name_if_unknown(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    if not (dc.state.name or "").strip():
        await dc.prompt(Prompts.NAME, "What is your name?")
    else:
        await next_step(args)


def apply_name(dc: DialogContext, args: Any) -> None:
    if not (dc.state.name or "").strip():
        dc.state.name = args


ASK_NAME = WaterfallStep(ask_name_if_unknown, prompts=(Prompts.NAME,))


# --- Profile flows ------------------------------------------------------------

async def view_profile(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    apply_name(dc, args)
    state = dc.state

    if state.profile_id is not None:
        try:
            profile = await dc.services.speaker.get_profile(state.profile_id)
        except SpeakerServiceError as e:
            await abort_flow(dc, e, Dialogs.MANAGE_PROFILE)
            return

        state.enrollment_status = profile.enrollment_status
        if profile.enrollment_status == EnrollmentStatus.ENROLLING:
            await dc.turn.send(
                f"Welcome back {state.name}. You are enrolling, "
                f"{profile.remaining_seconds:g}s remaining"
            )
        elif profile.enrollment_status == EnrollmentStatus.TRAINING:
            await dc.turn.send(f"Welcome back {state.name}. Your profile is being trained.")
        elif profile.enrollment_status == EnrollmentStatus.ENROLLED:
            await dc.turn.send(f"Welcome back {state.name}. Your profile is enrolled.")
        else:
            await dc.turn.send(f"Welcome back {state.name}.")
    else:
        await dc.turn.send(f"I haven't seen you before, {state.name}")

    await dc.replace(Dialogs.MANAGE_PROFILE)


async def create_profile(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    apply_name(dc, args)
    state = dc.state

    if state.profile_id is not None:
        await dc.turn.send(f"I know you {state.name}. Your existing profile id is: {state.profile_id}")
    else:
        await dc.turn.send("Creating a new profile...")
        try:
            profile_id = await dc.services.speaker.create_profile(dc.services.profile_locale)
        except SpeakerServiceError as e:
            await abort_flow(dc, e, Dialogs.MANAGE_PROFILE)
            return

        state.profile_id = profile_id
        state.enrollment_status = EnrollmentStatus.ENROLLING
        await dc.turn.send(f"Welcome {state.name}. Your new profile id is: {profile_id}")

    await dc.replace(Dialogs.MANAGE_PROFILE)


async def delete_profile(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    apply_name(dc, args)
    state = dc.state

    if state.profile_id is not None:
        await dc.turn.send("Deleting your profile")
        try:
            await dc.services.speaker.delete_profile(state.profile_id)
        except SpeakerServiceError as e:
            await abort_flow(dc, e, Dialogs.MANAGE_PROFILE)
            return

        state.profile_id = None
        state.enrollment_status = None
        await dc.turn.send("Deleted your profile")
    else:
        await dc.turn.send("I'm sorry, you don't have a profile to delete.")

    await dc.replace(Dialogs.MANAGE_PROFILE)


async def ask_enrollment_audio(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    apply_name(dc, args)

    if dc.state.profile_id is not None:
        await dc.turn.send("Enrolling your profile")
        await dc.prompt(Prompts.ENROLL_PROFILE, UPLOAD_WAV)
    else:
        await dc.turn.send("I'm sorry, you don't have a profile to enroll.")
        await dc.replace(Dialogs.MANAGE_PROFILE)


async def refresh_enrollment_status(dc: DialogContext, profile_id: UUID) -> None:
    """Best effort: the enrollment already succeeded even if this lookup fails."""
    try:
        profile = await dc.services.speaker.get_profile(profile_id)
    except SpeakerServiceError as e:
        dc.logger.warning(
            "Enrollment status refresh failed",
            profile_id=str(profile_id),
            error=str(e),
            error_type=type(e).__name__,
        )
        return

    dc.state.enrollment_status = profile.enrollment_status
    if profile.enrollment_status == EnrollmentStatus.ENROLLED:
        dc.state.add_known_speakers([profile_id])


async def enroll_profile(dc: DialogContext, attachments: Any, next_step: NextFn) -> None:
    state = dc.state
    profile_id = state.profile_id
    if profile_id is None:
        await dc.turn.send("I'm sorry, you don't have a profile to enroll.")
        await dc.replace(Dialogs.MANAGE_PROFILE)
        return

    try:
        attachment = require_wav_attachment(attachments)
        await dc.turn.send("Enrolling a profile with your voice...")

        audio = await dc.services.attachments.fetch(attachment.content_url)
        outcome = await dc.services.enrollment.enroll(
            audio, profile_id, conversation_id=dc.turn.conversation_id
        )
    except (AttachmentError, SpeakerServiceError) as e:
        await abort_flow(dc, e, Dialogs.MANAGE_PROFILE)
        return

    if outcome.kind == OutcomeKind.SUCCESS:
        await refresh_enrollment_status(dc, profile_id)
        await dc.turn.send("Enrolling of attachment is complete.")
    else:
        category = (
            FlowErrorCategory.ENROLLMENT_FAILED
            if outcome.kind == OutcomeKind.FAILED
            else FlowErrorCategory.ENROLLMENT_TIMED_OUT
        )
        await dc.turn.send(
            FlowErrorHandler.report(
                dc.turn.conversation_id,
                category,
                detail=outcome.message or "",
                dialog_name=Dialogs.ENROLL_PROFILE,
            )
        )

    await dc.replace(Dialogs.MANAGE_PROFILE)


# --- Recognition, speech to text, sentiment -----------------------------------

async def ask_audio_upload(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    frame = dc.active_frame
    prompt_name = (
        Prompts.RECOGNIZE_THIS_TTS if frame.dialog_name == Dialogs.SPEECH_TO_TEXT else Prompts.RECOGNIZE_THIS
    )
    await dc.prompt(prompt_name, UPLOAD_WAV)


async def recognize_speaker(dc: DialogContext, attachments: Any, next_step: NextFn) -> None:
    state = dc.state

    async def on_result(result) -> None:
        if not result.succeeded:
            await dc.turn.send(f"Recognition failed with error '{result.failure_message}'.")
        elif state.profile_id is not None and result.profile_id == state.profile_id:
            await dc.turn.send(f"Recognized you, confidence '{result.confidence}'.")
        else:
            await dc.turn.send(
                f"Recognized other profile '{result.profile_id}', confidence '{result.confidence}'."
            )

    try:
        attachment = require_wav_attachment(attachments)

        profiles = await dc.services.speaker.list_profiles()
        state.add_known_speakers(
            p.profile_id for p in profiles if p.enrollment_status == EnrollmentStatus.ENROLLED
        )

        await dc.turn.send("Analyzing your voice...")
        recognizer = dc.services.require("recognizer")
        audio = await dc.services.attachments.fetch(attachment.content_url)
        await recognizer.analyze(
            audio,
            sorted(state.known_speakers),
            on_result,
            conversation_id=dc.turn.conversation_id,
        )
    except (AttachmentError, SpeakerServiceError) as e:
        await abort_flow(dc, e, Dialogs.MAIN)
        return

    await dc.turn.send("Analysis complete.")
    await dc.replace(Dialogs.MAIN)


async def speech_to_text(dc: DialogContext, attachments: Any, next_step: NextFn) -> None:
    try:
        attachment = require_wav_attachment(attachments)
        transcriber = dc.services.require("transcriber")

        await dc.turn.send("Analyzing text...")
        text = await transcriber.transcribe(attachment.content_url)
    except (AttachmentError, SpeakerServiceError) as e:
        await abort_flow(dc, e, Dialogs.MAIN)
        return

    await dc.turn.send(text or NOT_RECOGNIZED)
    await dc.turn.send("Analysis complete.")
    await dc.replace(Dialogs.MAIN)


async def ask_sentence(dc: DialogContext, args: Any, next_step: NextFn) -> None:
    await dc.prompt(Prompts.ANALYZE_TEXT, "How is your day going?")


async def analyze_text(dc: DialogContext, sentence: Any, next_step: NextFn) -> None:
    try:
        score = await dc.services.require("sentiment").score(sentence)
    except SpeakerServiceError as e:
        await abort_flow(dc, e, Dialogs.MAIN)
        return

    await dc.turn.send(f"{score:05.2f}% positive")
    await dc.replace(Dialogs.MAIN)


VIEW_PROFILE_STEPS = (
    ASK_NAME,
    WaterfallStep(view_profile, transitions=(Dialogs.MANAGE_PROFILE,)),
)

CREATE_PROFILE_STEPS = (
    ASK_NAME,
    WaterfallStep(create_profile, transitions=(Dialogs.MANAGE_PROFILE,)),
)

DELETE_PROFILE_STEPS = (
    ASK_NAME,
    WaterfallStep(delete_profile, transitions=(Dialogs.MANAGE_PROFILE,)),
)

ENROLL_PROFILE_STEPS = (
    ASK_NAME,
    WaterfallStep(
        ask_enrollment_audio,
        prompts=(Prompts.ENROLL_PROFILE,),
        transitions=(Dialogs.MANAGE_PROFILE,),
    ),
    WaterfallStep(enroll_profile, transitions=(Dialogs.MANAGE_PROFILE,)),
)

RECOGNIZE_SPEAKER_STEPS = (
    WaterfallStep(ask_audio_upload, prompts=(Prompts.RECOGNIZE_THIS,)),
    WaterfallStep(recognize_speaker, transitions=(Dialogs.MAIN,)),
)

SPEECH_TO_TEXT_STEPS = (
    WaterfallStep(ask_audio_upload, prompts=(Prompts.RECOGNIZE_THIS_TTS,)),
    WaterfallStep(speech_to_text, transitions=(Dialogs.MAIN,)),
)

ANALYZE_TEXT_STEPS = (
    WaterfallStep(ask_sentence, prompts=(Prompts.ANALYZE_TEXT,)),
    WaterfallStep(analyze_text, transitions=(Dialogs.MAIN,)),
)
