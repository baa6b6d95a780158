"""
Tests for streaming speaker recognition.

Verifies:
- Chunking: ceil(L / 32000) non-empty chunks, paced once per chunk
- Exactly one end-of-stream on success, none on failure
- The session is closed on every path
- Results reach the caller's sink
"""
import asyncio
import io
import json
import math
from types import SimpleNamespace
from uuid import uuid4

import aiohttp
import pytest

from speech_services.errors import RecognitionStreamError
from speech_services.streaming import RecognitionResult, StreamingRecognizer, WebSocketRecognitionBackend


class TrickleStream(io.RawIOBase):
    """Returns at most ``step`` bytes per read, like a slow socket."""

    def __init__(self, data: bytes, step: int):
        self._data = io.BytesIO(data)
        self._step = step

    def readable(self):
        return True

    def read(self, size=-1):
        if size < 0:
            size = self._step
        return self._data.read(min(size, self._step))


async def ignore(result):
    pass


@pytest.mark.asyncio
@pytest.mark.parametrize("length", [0, 1, 32000, 32001, 100000])
async def test_chunking_pacing_and_single_end(backend_factory, fake_sleep, length):
    backend = backend_factory()
    recognizer = StreamingRecognizer(backend, sleep=fake_sleep)

    await recognizer.analyze(b"\x00" * length, [uuid4()], ignore)

    channel = backend.last
    assert len(channel.chunks) == math.ceil(length / 32000)
    assert all(0 < len(c) <= 32000 for c in channel.chunks)
    assert sum(len(c) for c in channel.chunks) == length
    assert fake_sleep.calls == [1.0] * len(channel.chunks)
    assert channel.end_count == 1
    assert channel.closed


@pytest.mark.asyncio
async def test_short_reads_are_topped_up_to_full_chunks(backend_factory, fake_sleep):
    backend = backend_factory()
    recognizer = StreamingRecognizer(backend, sleep=fake_sleep)

    await recognizer.analyze(TrickleStream(b"\x01" * 70000, step=4096), [], ignore)

    assert [len(c) for c in backend.last.chunks] == [32000, 32000, 6000]


@pytest.mark.asyncio
async def test_push_failure_still_closes_without_end(backend_factory, fake_sleep):
    backend = backend_factory(fail_on_push=1)
    recognizer = StreamingRecognizer(backend, sleep=fake_sleep)

    with pytest.raises(RecognitionStreamError):
        await recognizer.analyze(b"\x00" * 100000, [uuid4()], ignore)

    channel = backend.last
    assert len(channel.chunks) == 1
    assert channel.end_count == 0
    assert channel.closed


@pytest.mark.asyncio
async def test_open_failure_is_reported_as_stream_error(fake_sleep):
    class Unreachable:
        async def open(self, session):
            raise OSError("connection refused")

    recognizer = StreamingRecognizer(Unreachable(), sleep=fake_sleep)

    with pytest.raises(RecognitionStreamError, match="connection refused"):
        await recognizer.analyze(b"\x00", [], ignore)
    assert fake_sleep.calls == []


@pytest.mark.asyncio
async def test_close_failure_does_not_mask_success(backend_factory, fake_sleep):
    backend = backend_factory()
    recognizer = StreamingRecognizer(backend, sleep=fake_sleep)
    original_open = backend.open

    async def open_with_broken_close(session):
        channel = await original_open(session)

        async def broken_close():
            raise ConnectionResetError("already gone")

        channel.close = broken_close
        return channel

    backend.open = open_with_broken_close

    await recognizer.analyze(b"\x00" * 10, [], ignore)

    assert backend.last.end_count == 1


@pytest.mark.asyncio
async def test_candidates_are_snapshotted(backend_factory, fake_sleep):
    backend = backend_factory()
    recognizer = StreamingRecognizer(backend, sleep=fake_sleep)
    first, late = uuid4(), uuid4()
    candidates = {first}

    async def add_late_speaker(result):
        candidates.add(late)

    backend.results = [RecognitionResult(succeeded=True, profile_id=first, confidence="High")]
    await recognizer.analyze(b"\x00" * 10, candidates, add_late_speaker)

    assert backend.last.session.candidate_profiles == (first,)
    assert late in candidates


@pytest.mark.asyncio
async def test_results_reach_sink(backend_factory, fake_sleep):
    profile = uuid4()
    backend = backend_factory(results=[
        RecognitionResult(succeeded=True, profile_id=profile, confidence="Normal", is_final=False),
        RecognitionResult(succeeded=True, profile_id=profile, confidence="High"),
    ])
    recognizer = StreamingRecognizer(backend, sleep=fake_sleep)
    seen = []

    async def collect(result):
        seen.append(result)

    await recognizer.analyze(b"\x00" * 10, [profile], collect)

    assert [r.confidence for r in seen] == ["Normal", "High"]
    assert seen[-1].is_final


def test_result_from_json():
    profile = uuid4()
    result = RecognitionResult.from_json({
        "succeeded": True,
        "identifiedProfileId": str(profile),
        "confidence": "High",
    })

    assert result.profile_id == profile
    assert result.is_final

    failed = RecognitionResult.from_json({"succeeded": False, "failureMessage": "Too short"})
    assert failed.profile_id is None
    assert failed.failure_message == "Too short"


@pytest.mark.asyncio
async def test_emits_session_lifecycle_events(backend_factory, fake_sleep, capsys):
    recognizer = StreamingRecognizer(backend_factory(), sleep=fake_sleep)

    await recognizer.analyze(b"\x00" * 10, [], ignore, conversation_id="conv-rec")

    output = capsys.readouterr().out
    assert "recognition.opened" in output
    assert "recognition.closed" in output
    assert "conv-rec" in output


class FakeSocket:
    """Scripted recognition WebSocket: answers the end message with ``replies``."""

    def __init__(self, replies=(), close_on_end=False):
        self.replies = list(replies)
        self.close_on_end = close_on_end
        self.sent_text = []
        self.sent_bytes = []
        self.closed = False
        self._inbox = asyncio.Queue()

    async def send_str(self, data):
        self.sent_text.append(json.loads(data))
        if self.sent_text[-1]["type"] == "end":
            for reply in self.replies:
                await self._inbox.put(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=json.dumps(reply)))
            if self.close_on_end:
                await self._inbox.put(None)

    async def send_bytes(self, data):
        self.sent_bytes.append(data)

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        msg = await self._inbox.get()
        if msg is None:
            raise StopAsyncIteration
        return msg


class FakeWsHttp:
    def __init__(self, socket):
        self.socket = socket
        self.connects = []

    async def ws_connect(self, url, **kwargs):
        self.connects.append((url, kwargs))
        return self.socket


@pytest.mark.asyncio
async def test_websocket_backend_session(fake_sleep):
    profile = uuid4()
    socket = FakeSocket(replies=[
        {"succeeded": True, "identifiedProfileId": str(profile), "confidence": "Normal", "isFinal": False},
        {"succeeded": True, "identifiedProfileId": str(profile), "confidence": "High", "isFinal": True},
    ])
    http = FakeWsHttp(socket)
    backend = WebSocketRecognitionBackend(http, "wss://speaker.test/stream", "k", result_timeout_seconds=1.0)
    seen = []

    async def collect(result):
        seen.append(result.confidence)

    await StreamingRecognizer(backend, sleep=fake_sleep).analyze(b"\x00" * 40000, [profile], collect)

    start, end = socket.sent_text
    assert start["type"] == "start"
    assert start["profileIds"] == [str(profile)]
    assert start["audioFormat"]["sampleRate"] == 16000
    assert end["type"] == "end"
    assert [len(c) for c in socket.sent_bytes] == [32000, 8000]
    assert seen == ["Normal", "High"]
    assert socket.closed


@pytest.mark.asyncio
async def test_websocket_backend_times_out_without_final_result(fake_sleep):
    socket = FakeSocket()
    backend = WebSocketRecognitionBackend(FakeWsHttp(socket), "wss://x", "k", result_timeout_seconds=0.05)

    with pytest.raises(RecognitionStreamError, match="No recognition result"):
        await StreamingRecognizer(backend, sleep=fake_sleep).analyze(b"\x00", [], ignore)

    assert socket.closed


@pytest.mark.asyncio
async def test_websocket_closed_before_final_result(fake_sleep):
    socket = FakeSocket(close_on_end=True)
    backend = WebSocketRecognitionBackend(FakeWsHttp(socket), "wss://x", "k", result_timeout_seconds=1.0)

    with pytest.raises(RecognitionStreamError, match="closed before a final result"):
        await StreamingRecognizer(backend, sleep=fake_sleep).analyze(b"\x00", [], ignore)

    assert socket.closed
