"""
Streaming speaker recognition.

``StreamingRecognizer.analyze`` owns one recognition session per call:

1. snapshot the candidate profiles and open a session under a fresh id
2. push the audio in fixed-size chunks, pacing after every chunk so delivery
   stays close to real time
3. send exactly one end-of-stream signal
4. close the session, whether streaming finished or failed

Results arrive asynchronously from the backend (zero or more partials, one
terminal) and are handed to the caller's sink as they come in.
"""

from __future__ import annotations

import asyncio
import io
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, BinaryIO, Callable, Iterable, Optional, Protocol, Union
from uuid import UUID, uuid4

import aiohttp

from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter, Severity

from .errors import RecognitionStreamError
from .speaker_recognition import SUBSCRIPTION_KEY_HEADER

emitter = EventEmitter(Component.RECOGNITION)
logger = get_logger(LogComponent.RECOGNITION)


@dataclass(frozen=True)
class AudioFormat:
    encoding: str = "PCM"
    channels: int = 1
    sample_rate: int = 16000
    bits_per_sample: int = 16
    container: str = "WAV"

    def to_dict(self) -> dict[str, Any]:
        return {
            "encoding": self.encoding,
            "channels": self.channels,
            "sampleRate": self.sample_rate,
            "bitsPerSample": self.bits_per_sample,
            "container": self.container,
        }


@dataclass(frozen=True)
class RecognitionResult:
    succeeded: bool
    profile_id: Optional[UUID] = None
    confidence: Optional[str] = None
    failure_message: Optional[str] = None
    is_final: bool = True

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> "RecognitionResult":
        profile_id = data.get("identifiedProfileId")
        confidence = data.get("confidence")
        return cls(
            succeeded=bool(data.get("succeeded")),
            profile_id=UUID(profile_id) if profile_id else None,
            confidence=str(confidence) if confidence is not None else None,
            failure_message=data.get("failureMessage"),
            is_final=bool(data.get("isFinal", True)),
        )


ResultSink = Callable[[RecognitionResult], Awaitable[None]]


@dataclass
class RecognitionSession:
    """One analysis attempt. Lives exactly as long as its network channel."""

    session_id: UUID
    candidate_profiles: tuple[UUID, ...]
    result_sink: ResultSink
    audio_format: AudioFormat = field(default_factory=AudioFormat)


class RecognitionChannel(Protocol):
    async def push_chunk(self, chunk: bytes) -> None: ...

    async def end_stream(self) -> None: ...

    async def close(self) -> None: ...


class RecognitionBackend(Protocol):
    async def open(self, session: RecognitionSession) -> RecognitionChannel: ...


class StreamingRecognizer:
    def __init__(
        self,
        backend: RecognitionBackend,
        chunk_size: int = 32000,
        pacing_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self._backend = backend
        self._chunk_size = chunk_size
        self._pacing = pacing_seconds
        self._sleep = sleep

    async def analyze(
        self,
        audio: Union[bytes, bytearray, BinaryIO],
        candidate_profiles: Iterable[UUID],
        on_result: ResultSink,
        *,
        conversation_id: str = "",
    ) -> None:
        # Point-in-time copy: later changes to the caller's set are not seen.
        candidates = tuple(candidate_profiles)
        stream = io.BytesIO(bytes(audio)) if isinstance(audio, (bytes, bytearray)) else audio

        async def sink(result: RecognitionResult) -> None:
            emitter.emit(
                "recognition.result",
                conversation_id,
                severity=Severity.INFO if result.succeeded else Severity.WARN,
                session_id=str(session.session_id),
                succeeded=result.succeeded,
                profile_id=str(result.profile_id) if result.profile_id else None,
                confidence=result.confidence,
                is_final=result.is_final,
            )
            await on_result(result)

        session = RecognitionSession(session_id=uuid4(), candidate_profiles=candidates, result_sink=sink)

        try:
            channel = await self._backend.open(session)
        except RecognitionStreamError:
            raise
        except Exception as e:
            raise RecognitionStreamError(f"Could not open recognition session: {e}") from e

        emitter.emit(
            "recognition.opened",
            conversation_id,
            session_id=str(session.session_id),
            candidates=len(candidates),
        )

        chunks = 0
        try:
            while True:
                chunk = self._read_chunk(stream)
                if not chunk:
                    break
                await channel.push_chunk(chunk)
                chunks += 1
                await self._sleep(self._pacing)

            await channel.end_stream()
        except RecognitionStreamError:
            raise
        except Exception as e:
            raise RecognitionStreamError(str(e)) from e
        finally:
            await self._close(channel, session)
            emitter.emit(
                "recognition.closed",
                conversation_id,
                session_id=str(session.session_id),
                chunks=chunks,
            )

    def _read_chunk(self, stream: BinaryIO) -> bytes:
        """Read a full chunk unless the stream ends first; short reads are topped up."""
        buffer = bytearray()
        while len(buffer) < self._chunk_size:
            data = stream.read(self._chunk_size - len(buffer))
            if not data:
                break
            buffer.extend(data)
        return bytes(buffer)

    async def _close(self, channel: RecognitionChannel, session: RecognitionSession) -> None:
        try:
            await channel.close()
        except Exception as e:
            # Never mask the streaming outcome with a close failure.
            logger.warning(
                "Error closing recognition session",
                session_id=str(session.session_id),
                error=str(e),
                error_type=type(e).__name__,
            )


class WebSocketRecognitionBackend:
    """Opens recognition sessions over a WebSocket to the streaming endpoint."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        endpoint: str,
        subscription_key: str,
        step_seconds: int = 5,
        window_seconds: int = 10,
        result_timeout_seconds: float = 10.0,
    ):
        self._http = http
        self._endpoint = endpoint
        self._subscription_key = subscription_key
        self._step_seconds = step_seconds
        self._window_seconds = window_seconds
        self._result_timeout = result_timeout_seconds

    async def open(self, session: RecognitionSession) -> "WebSocketRecognitionChannel":
        start_ts = time.time()
        ws = await self._http.ws_connect(
            self._endpoint,
            headers={SUBSCRIPTION_KEY_HEADER: self._subscription_key},
        )
        await ws.send_str(json.dumps({
            "type": "start",
            "sessionId": str(session.session_id),
            "profileIds": [str(p) for p in session.candidate_profiles],
            "audioFormat": session.audio_format.to_dict(),
            "stepSeconds": self._step_seconds,
            "windowSeconds": self._window_seconds,
        }))
        logger.info(
            "Recognition session opened",
            session_id=str(session.session_id),
            latency_ms=int((time.time() - start_ts) * 1000),
        )

        channel = WebSocketRecognitionChannel(ws, session, self._result_timeout)
        channel.start()
        return channel


class WebSocketRecognitionChannel:
    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        session: RecognitionSession,
        result_timeout_seconds: float,
    ):
        self._ws = ws
        self._session = session
        self._result_timeout = result_timeout_seconds
        self._terminal = asyncio.Event()
        self._reader: Optional[asyncio.Task] = None
        self._error: Optional[BaseException] = None

    def start(self) -> None:
        self._reader = asyncio.create_task(self._read_results())

    async def push_chunk(self, chunk: bytes) -> None:
        self._raise_if_failed()
        await self._ws.send_bytes(chunk)

    async def end_stream(self) -> None:
        self._raise_if_failed()
        await self._ws.send_str(json.dumps({"type": "end", "sessionId": str(self._session.session_id)}))
        try:
            await asyncio.wait_for(self._terminal.wait(), timeout=self._result_timeout)
        except asyncio.TimeoutError:
            raise RecognitionStreamError(
                f"No recognition result within {self._result_timeout:g}s"
            ) from None
        self._raise_if_failed()

    async def close(self) -> None:
        if self._reader is not None and not self._reader.done():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
        await self._ws.close()

    async def _read_results(self) -> None:
        try:
            async for msg in self._ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    result = RecognitionResult.from_json(json.loads(msg.data))
                    await self._session.result_sink(result)
                    if result.is_final:
                        self._terminal.set()
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    raise RecognitionStreamError(f"Recognition socket error: {self._ws.exception()}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error = e
        finally:
            # Unblock end_stream if the socket closed without a terminal result.
            if not self._terminal.is_set() and self._error is None:
                self._error = RecognitionStreamError("Recognition session closed before a final result")
            self._terminal.set()

    def _raise_if_failed(self) -> None:
        if self._error is None:
            return
        if isinstance(self._error, RecognitionStreamError):
            raise self._error
        raise RecognitionStreamError(str(self._error)) from self._error
