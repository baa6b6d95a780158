"""
Shared fakes for the speech backends.

Every remote collaborator has an in-memory stand-in here so dialog flows,
enrollment polling and streaming can be driven without a network, and
``FakeSleep`` lets tests count simulated seconds instead of waiting.
"""
from typing import Iterable, Optional
from uuid import UUID, uuid4

import pytest

from dialog_engine.bot import SpeakerBot
from dialog_engine.identity import ALEX_ID, LOEK_ID
from dialog_engine.menus import build_dialog_set
from dialog_engine.state import ConversationState, EnrollmentStatus
from dialog_engine.turn import Attachment, MessageActivity, TurnContext
from observability.event_store import event_store
from speech_services.enrollment import EnrollmentSupervisor
from speech_services.errors import SpeakerServiceError
from speech_services.services import BotServices
from speech_services.speaker_recognition import OperationResult, OperationStatus, Profile
from speech_services.streaming import RecognitionResult, RecognitionSession, StreamingRecognizer


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


class FakeSpeakerClient:
    """In-memory speaker recognition backend."""

    def __init__(self):
        self.profiles: dict[UUID, Profile] = {}
        self.created_id = uuid4()
        self.poll_statuses: list[OperationResult] = []
        self.submit_error: Optional[Exception] = None
        self.poll_error: Optional[Exception] = None
        self.enroll_to: Optional[EnrollmentStatus] = EnrollmentStatus.ENROLLED
        self.submissions: list[tuple[bytes, UUID]] = []
        self.polls: list[str] = []
        self.deleted: list[UUID] = []
        self.list_calls = 0

    def add_profile(self, profile_id: UUID, status: EnrollmentStatus, remaining: float = 0.0) -> None:
        self.profiles[profile_id] = Profile(profile_id, status, remaining)

    async def create_profile(self, locale: str = "en-US") -> UUID:
        self.add_profile(self.created_id, EnrollmentStatus.ENROLLING, 30.0)
        return self.created_id

    async def delete_profile(self, profile_id: UUID) -> None:
        self.deleted.append(profile_id)
        self.profiles.pop(profile_id, None)

    async def get_profile(self, profile_id: UUID) -> Profile:
        if profile_id not in self.profiles:
            raise SpeakerServiceError("Profile not found", status=404)
        return self.profiles[profile_id]

    async def list_profiles(self) -> list[Profile]:
        self.list_calls += 1
        return list(self.profiles.values())

    async def submit_enrollment(self, audio: bytes, profile_id: UUID) -> str:
        if self.submit_error is not None:
            raise self.submit_error
        self.submissions.append((audio, profile_id))
        return f"https://speaker.test/operations/{profile_id}"

    async def poll_enrollment(self, polling_handle: str) -> OperationResult:
        if self.poll_error is not None:
            raise self.poll_error
        self.polls.append(polling_handle)
        if self.poll_statuses:
            result = self.poll_statuses.pop(0)
        else:
            result = OperationResult(OperationStatus.RUNNING)
        if result.status == OperationStatus.SUCCEEDED and self.enroll_to is not None:
            profile_id = UUID(polling_handle.rsplit("/", 1)[-1])
            self.add_profile(profile_id, self.enroll_to)
        return result


class FakeChannel:
    def __init__(self, session: RecognitionSession, results: Iterable[RecognitionResult], fail_on_push: Optional[int]):
        self.session = session
        self.results = list(results)
        self.fail_on_push = fail_on_push
        self.chunks: list[bytes] = []
        self.end_count = 0
        self.closed = False

    async def push_chunk(self, chunk: bytes) -> None:
        if self.fail_on_push is not None and len(self.chunks) == self.fail_on_push:
            raise ConnectionResetError("connection lost")
        self.chunks.append(chunk)

    async def end_stream(self) -> None:
        self.end_count += 1
        for result in self.results:
            await self.session.result_sink(result)

    async def close(self) -> None:
        self.closed = True


class FakeRecognitionBackend:
    """Opens FakeChannels and keeps them for inspection."""

    def __init__(self, results: Iterable[RecognitionResult] = (), fail_on_push: Optional[int] = None):
        self.results = list(results)
        self.fail_on_push = fail_on_push
        self.channels: list[FakeChannel] = []

    async def open(self, session: RecognitionSession) -> FakeChannel:
        channel = FakeChannel(session, self.results, self.fail_on_push)
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


class FakeFetcher:
    def __init__(self):
        self.files: dict[str, bytes] = {}

    async def fetch(self, url: str) -> bytes:
        if url not in self.files:
            raise SpeakerServiceError("Could not download attachment: 404", status=404)
        return self.files[url]


class FakeTranscriber:
    def __init__(self, text: str = "hello world"):
        self.text = text
        self.urls: list[str] = []

    async def transcribe(self, audio_url: str) -> str:
        self.urls.append(audio_url)
        return self.text


class FakeSentiment:
    def __init__(self, score: float = 87.5):
        self._score = score
        self.texts: list[str] = []

    async def score(self, text: str, language: str = "en") -> float:
        self.texts.append(text)
        return self._score


WAV_URL = "https://files.test/voice.wav"


def wav_attachment(url: str = WAV_URL) -> Attachment:
    return Attachment(content_type="audio/wav", content_url=url, name="voice.wav")


@pytest.fixture(autouse=True)
def clear_events():
    yield
    event_store.clear()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def backend_factory():
    return FakeRecognitionBackend


@pytest.fixture
def wav():
    return wav_attachment


@pytest.fixture
def bare_speaker():
    """Speaker backend with no profiles and every poll reporting 'running'."""
    return FakeSpeakerClient()


@pytest.fixture
def speaker():
    client = FakeSpeakerClient()
    client.add_profile(LOEK_ID, EnrollmentStatus.ENROLLED)
    client.add_profile(ALEX_ID, EnrollmentStatus.ENROLLED)
    return client


@pytest.fixture
def recognition_backend():
    return FakeRecognitionBackend()


@pytest.fixture
def fetcher():
    f = FakeFetcher()
    f.files[WAV_URL] = b"\x01" * 70000
    return f


@pytest.fixture
def services(speaker, recognition_backend, fetcher, fake_sleep):
    return BotServices(
        speaker=speaker,
        enrollment=EnrollmentSupervisor(speaker, max_attempts=10, poll_interval_seconds=5.0, sleep=fake_sleep),
        attachments=fetcher,
        recognizer=StreamingRecognizer(recognition_backend, sleep=fake_sleep),
        transcriber=FakeTranscriber(),
        sentiment=FakeSentiment(),
    )


@pytest.fixture
def bot(services):
    return SpeakerBot(build_dialog_set(), services)


@pytest.fixture
def state():
    return ConversationState(conversation_id="conv-1")


@pytest.fixture
def say(bot, state):
    """Run one turn and return the texts the bot replied with."""

    async def _say(text: str = "", attachments: Iterable[Attachment] = ()):
        turn = TurnContext(MessageActivity(state.conversation_id, text=text, attachments=tuple(attachments)))
        await bot.on_turn(turn, state)
        return [m.text for m in turn.outbound]

    return _say
