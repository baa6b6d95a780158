"""
Speech-to-text.

Two transports behind one ``transcribe(audio_url) -> str`` call:

- WebSocketTranscriber: streams the audio, partial results are logged only
- ChunkedHttpTranscriber: uploads the audio with chunked transfer encoding

The transport is picked once at startup by ``select_transcriber``; there is no
runtime fallback from one to the other.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import AsyncIterator, Optional, Protocol
from uuid import uuid4

import aiohttp

from logging_setup import Component, get_logger

from .attachments import AttachmentFetcher
from .config import ServiceConfig
from .errors import TranscriptionError
from .speaker_recognition import SUBSCRIPTION_KEY_HEADER

logger = get_logger(Component.STT)

NOT_RECOGNIZED = "Could not recognize"
AUDIO_CONTENT_TYPE = "audio/wav; codec=audio/pcm; samplerate=16000"


class SpeechToTextClient(Protocol):
    async def transcribe(self, audio_url: str) -> str: ...


def _chunks(audio: bytes, size: int):
    for offset in range(0, len(audio), size):
        yield audio[offset:offset + size]


class ChunkedHttpTranscriber:
    """Uploads audio in small chunks and returns the best hypothesis."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        fetcher: AttachmentFetcher,
        endpoint: str,
        subscription_key: str,
        locale: str = "en-US",
        chunk_bytes: int = 1024,
    ):
        self._http = http
        self._fetcher = fetcher
        self._endpoint = endpoint
        self._subscription_key = subscription_key
        self._locale = locale
        self._chunk_bytes = chunk_bytes

    async def transcribe(self, audio_url: str) -> str:
        audio = await self._fetcher.fetch(audio_url)

        async def body() -> AsyncIterator[bytes]:
            for chunk in _chunks(audio, self._chunk_bytes):
                yield chunk

        headers = {
            SUBSCRIPTION_KEY_HEADER: self._subscription_key,
            "Content-Type": AUDIO_CONTENT_TYPE,
            "Accept": "application/json;text/xml",
        }
        params = {"language": self._locale, "format": "detailed"}

        start_ts = time.time()
        try:
            async with self._http.post(self._endpoint, params=params, headers=headers, data=body()) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                if resp.status != 200:
                    logger.warning("Speech to text not recognized", status=resp.status, latency_ms=latency_ms)
                    return NOT_RECOGNIZED

                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise TranscriptionError("Speech to text request timed out") from e
        except aiohttp.ClientError as e:
            raise TranscriptionError(f"Speech to text request failed: {e}") from e

        data = data or {}
        nbest = data.get("NBest") or []
        if not nbest:
            raise TranscriptionError(
                f"Speech to text returned no hypotheses (status {data.get('RecognitionStatus')})"
            )

        logger.info("Speech to text completed", transport="http", latency_ms=latency_ms)
        return nbest[0].get("Display", "")


class WebSocketTranscriber:
    """Streams audio over a WebSocket and joins the final phrase results."""

    def __init__(
        self,
        http: aiohttp.ClientSession,
        fetcher: AttachmentFetcher,
        endpoint: str,
        subscription_key: str,
        locale: str = "en-GB",
        chunk_bytes: int = 1024,
    ):
        self._http = http
        self._fetcher = fetcher
        self._endpoint = endpoint
        self._subscription_key = subscription_key
        self._locale = locale
        self._chunk_bytes = chunk_bytes

    async def transcribe(self, audio_url: str) -> str:
        audio = await self._fetcher.fetch(audio_url)
        request_id = uuid4().hex
        phrases: list[str] = []

        start_ts = time.time()
        try:
            async with self._http.ws_connect(
                self._endpoint,
                params={"language": self._locale, "format": "detailed"},
                headers={SUBSCRIPTION_KEY_HEADER: self._subscription_key, "X-ConnectionId": request_id},
            ) as ws:
                for chunk in _chunks(audio, self._chunk_bytes):
                    await ws.send_bytes(chunk)
                await ws.send_str(json.dumps({"type": "end"}))

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.ERROR:
                        raise TranscriptionError(f"Speech to text socket error: {ws.exception()}")
                    if msg.type != aiohttp.WSMsgType.TEXT:
                        continue

                    event = json.loads(msg.data)
                    kind = event.get("type")
                    if kind == "partial":
                        logger.debug("Partial result", request_id=request_id, text=event.get("DisplayText"))
                    elif kind == "phrase":
                        logger.info(
                            "Phrase result",
                            request_id=request_id,
                            recognition_status=event.get("RecognitionStatus"),
                        )
                        if event.get("DisplayText"):
                            phrases.append(event["DisplayText"])
                    elif kind == "end":
                        break
        except asyncio.TimeoutError as e:
            raise TranscriptionError("Speech to text stream timed out") from e
        except aiohttp.ClientError as e:
            raise TranscriptionError(f"Speech to text stream failed: {e}") from e

        logger.info(
            "Speech to text completed",
            transport="websocket",
            request_id=request_id,
            phrases=len(phrases),
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return " ".join(phrases) if phrases else NOT_RECOGNIZED


def select_transcriber(
    config: ServiceConfig,
    http: aiohttp.ClientSession,
    fetcher: AttachmentFetcher,
) -> Optional[SpeechToTextClient]:
    """
    Pick the speech-to-text transport once, from configuration.

    ``auto`` streams when a streaming endpoint is configured and uploads over
    HTTP otherwise. Returns None when no STT key is configured.
    """
    if not config.stt_key:
        logger.warning("STT_KEY not set; speech to text disabled")
        return None

    transport = config.stt_transport
    if transport == "auto":
        transport = "websocket" if config.stt_streaming_endpoint else "http"

    if transport == "websocket":
        if not config.stt_streaming_endpoint:
            raise ValueError("STT_TRANSPORT=websocket requires STT_STREAMING_ENDPOINT")
        logger.info("Speech to text transport selected", transport="websocket")
        return WebSocketTranscriber(
            http,
            fetcher,
            config.stt_streaming_endpoint,
            config.stt_key,
            locale=config.stt_locale,
            chunk_bytes=config.stt_chunk_bytes,
        )

    logger.info("Speech to text transport selected", transport="http")
    return ChunkedHttpTranscriber(
        http,
        fetcher,
        config.stt_endpoint,
        config.stt_key,
        locale=config.stt_locale,
        chunk_bytes=config.stt_chunk_bytes,
    )
