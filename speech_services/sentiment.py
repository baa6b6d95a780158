"""Text sentiment scoring (Text Analytics sentiment API)."""

from __future__ import annotations

import asyncio
import time

import aiohttp

from logging_setup import Component, get_logger

from .errors import SpeakerServiceError
from .speaker_recognition import SUBSCRIPTION_KEY_HEADER

logger = get_logger(Component.SENTIMENT)


class SentimentClient:
    def __init__(self, http: aiohttp.ClientSession, endpoint: str, subscription_key: str):
        self._http = http
        self._endpoint = endpoint.rstrip("/")
        self._subscription_key = subscription_key

    async def score(self, text: str, language: str = "en") -> float:
        """Return how positive ``text`` is, as a percentage (0-100)."""
        payload = {"documents": [{"language": language, "id": "0", "text": text}]}
        start_ts = time.time()
        try:
            async with self._http.post(
                f"{self._endpoint}/sentiment",
                json=payload,
                headers={SUBSCRIPTION_KEY_HEADER: self._subscription_key},
            ) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                if resp.status != 200:
                    error_text = await resp.text()
                    logger.error("Sentiment API error", status=resp.status, latency_ms=latency_ms)
                    raise SpeakerServiceError(
                        f"Sentiment API error: {resp.status}",
                        status=resp.status,
                        detail=error_text,
                    )
                data = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise SpeakerServiceError("Sentiment request timed out") from e
        except aiohttp.ClientError as e:
            raise SpeakerServiceError(f"Sentiment request failed: {e}") from e

        documents = data.get("documents") or []
        if not documents:
            raise SpeakerServiceError("Sentiment API returned no documents")

        logger.info("Sentiment scored", latency_ms=latency_ms, text_length=len(text))
        return float(documents[0]["score"]) * 100
