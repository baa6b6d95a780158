"""
Tests for the REST speech clients against a scripted HTTP session.

Verifies:
- Speaker Recognition profile calls and enrollment submission
- Errors become SpeakerServiceError / SubmissionError
- Attachment download and sentiment scoring
"""
import asyncio
import json
from uuid import uuid4

import aiohttp
import pytest

from dialog_engine.state import EnrollmentStatus
from speech_services.attachments import AttachmentFetcher
from speech_services.errors import SpeakerServiceError, SubmissionError, TranscriptionError
from speech_services.sentiment import SentimentClient
from speech_services.speaker_recognition import (
    SUBSCRIPTION_KEY_HEADER,
    OperationStatus,
    SpeakerRecognitionClient,
)
from speech_services.speech_to_text import ChunkedHttpTranscriber

ENDPOINT = "https://speaker.test/spid/v1.0"


class FakeResponse:
    def __init__(self, status=200, body=None, headers=None):
        self.status = status
        self._raw = body if isinstance(body, bytes) else json.dumps(body).encode() if body is not None else b""
        self.headers = headers or {}
        self.content_length = len(self._raw)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def json(self, content_type=None):
        return json.loads(self._raw) if self._raw else None

    async def text(self):
        return self._raw.decode()

    async def read(self):
        return self._raw


class FakeHttp:
    """Answers requests from a queue and records what was sent."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)


@pytest.mark.asyncio
async def test_create_profile_sends_locale_and_key():
    profile_id = uuid4()
    http = FakeHttp(FakeResponse(200, {"identificationProfileId": str(profile_id)}))
    client = SpeakerRecognitionClient(http, ENDPOINT + "/", "secret-key")

    assert await client.create_profile("en-US") == profile_id

    method, url, kwargs = http.requests[0]
    assert (method, url) == ("POST", f"{ENDPOINT}/identificationProfiles")
    assert kwargs["json"] == {"locale": "en-US"}
    assert kwargs["headers"][SUBSCRIPTION_KEY_HEADER] == "secret-key"


@pytest.mark.asyncio
async def test_get_and_list_profiles():
    profile_id = uuid4()
    body = {
        "identificationProfileId": str(profile_id),
        "enrollmentStatus": "Enrolling",
        "remainingEnrollmentSpeechSeconds": 12.5,
    }
    http = FakeHttp(FakeResponse(200, body), FakeResponse(200, [body]))
    client = SpeakerRecognitionClient(http, ENDPOINT, "k")

    profile = await client.get_profile(profile_id)
    assert profile.enrollment_status == EnrollmentStatus.ENROLLING
    assert profile.remaining_seconds == 12.5

    profiles = await client.list_profiles()
    assert [p.profile_id for p in profiles] == [profile_id]


@pytest.mark.asyncio
async def test_delete_profile_with_empty_body():
    profile_id = uuid4()
    http = FakeHttp(FakeResponse(200))
    client = SpeakerRecognitionClient(http, ENDPOINT, "k")

    await client.delete_profile(profile_id)

    assert http.requests[0][:2] == ("DELETE", f"{ENDPOINT}/identificationProfiles/{profile_id}")


@pytest.mark.asyncio
async def test_error_status_raises_service_error():
    http = FakeHttp(FakeResponse(404, {"error": {"message": "Profile not found"}}))
    client = SpeakerRecognitionClient(http, ENDPOINT, "k")

    with pytest.raises(SpeakerServiceError) as exc_info:
        await client.get_profile(uuid4())

    assert exc_info.value.status == 404
    assert "Profile not found" in exc_info.value.detail


@pytest.mark.asyncio
async def test_transport_error_raises_service_error():
    http = FakeHttp(aiohttp.ClientConnectionError("connection refused"))
    client = SpeakerRecognitionClient(http, ENDPOINT, "k")

    with pytest.raises(SpeakerServiceError, match="connection refused"):
        await client.list_profiles()


@pytest.mark.asyncio
async def test_submit_enrollment_returns_operation_location():
    profile_id = uuid4()
    location = "https://speaker.test/spid/v1.0/operations/abc"
    http = FakeHttp(FakeResponse(202, headers={"Operation-Location": location}))
    client = SpeakerRecognitionClient(http, ENDPOINT, "k")

    assert await client.submit_enrollment(b"RIFF", profile_id) == location

    method, url, kwargs = http.requests[0]
    assert url == f"{ENDPOINT}/identificationProfiles/{profile_id}/enroll"
    assert kwargs["data"] == b"RIFF"
    assert kwargs["headers"]["Content-Type"] == "application/octet-stream"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    FakeResponse(200, {}),
    FakeResponse(400, {"error": "InvalidAudio"}),
    FakeResponse(202),
])
async def test_submit_enrollment_rejections(response):
    client = SpeakerRecognitionClient(FakeHttp(response), ENDPOINT, "k")

    with pytest.raises(SubmissionError):
        await client.submit_enrollment(b"RIFF", uuid4())


@pytest.mark.asyncio
async def test_poll_enrollment_uses_handle_as_is():
    handle = "https://speaker.test/spid/v1.0/operations/abc"
    http = FakeHttp(FakeResponse(200, {"status": "failed", "message": "Audio too short"}))
    client = SpeakerRecognitionClient(http, ENDPOINT, "k")

    result = await client.poll_enrollment(handle)

    assert http.requests[0][:2] == ("GET", handle)
    assert result.status == OperationStatus.FAILED
    assert result.message == "Audio too short"


@pytest.mark.asyncio
async def test_attachment_fetcher():
    http = FakeHttp(FakeResponse(200, b"RIFF....WAVE"), FakeResponse(403))
    fetcher = AttachmentFetcher(http)

    assert await fetcher.fetch("https://files.test/a.wav") == b"RIFF....WAVE"
    with pytest.raises(SpeakerServiceError):
        await fetcher.fetch("https://files.test/b.wav")


@pytest.mark.asyncio
async def test_sentiment_score_is_a_percentage():
    http = FakeHttp(FakeResponse(200, {"documents": [{"id": "0", "score": 0.875}]}))
    client = SentimentClient(http, "https://text.test/v2.0/", "k")

    assert await client.score("Great day today") == 87.5

    method, url, kwargs = http.requests[0]
    assert url == "https://text.test/v2.0/sentiment"
    assert kwargs["json"]["documents"][0]["text"] == "Great day today"


@pytest.mark.asyncio
async def test_sentiment_without_documents_fails():
    client = SentimentClient(FakeHttp(FakeResponse(200, {"documents": []})), "https://text.test", "k")

    with pytest.raises(SpeakerServiceError):
        await client.score("hello there")


class TestTimeouts:
    """An expired aiohttp total timeout surfaces as the client's service error."""

    @pytest.mark.asyncio
    async def test_poll_timeout(self):
        client = SpeakerRecognitionClient(FakeHttp(asyncio.TimeoutError()), ENDPOINT, "k")

        with pytest.raises(SpeakerServiceError, match="poll_enrollment failed: timed out"):
            await client.poll_enrollment("https://speaker.test/operations/abc")

    @pytest.mark.asyncio
    async def test_submit_timeout(self):
        client = SpeakerRecognitionClient(FakeHttp(asyncio.TimeoutError()), ENDPOINT, "k")

        with pytest.raises(SubmissionError, match="timed out"):
            await client.submit_enrollment(b"RIFF", uuid4())

    @pytest.mark.asyncio
    async def test_fetch_timeout(self):
        fetcher = AttachmentFetcher(FakeHttp(asyncio.TimeoutError()))

        with pytest.raises(SpeakerServiceError, match="timed out"):
            await fetcher.fetch("https://files.test/a.wav")

    @pytest.mark.asyncio
    async def test_sentiment_timeout(self):
        client = SentimentClient(FakeHttp(asyncio.TimeoutError()), "https://text.test", "k")

        with pytest.raises(SpeakerServiceError, match="timed out"):
            await client.score("hello there")

    @pytest.mark.asyncio
    async def test_transcription_timeout(self):
        http = FakeHttp(FakeResponse(200, b"RIFF....WAVE"), asyncio.TimeoutError())
        transcriber = ChunkedHttpTranscriber(http, AttachmentFetcher(http), "https://stt.test", "k")

        with pytest.raises(TranscriptionError, match="timed out"):
            await transcriber.transcribe("https://files.test/a.wav")
