"""Download user attachments (audio uploads) into memory."""

from __future__ import annotations

import asyncio
import time

import aiohttp

from logging_setup import Component, get_logger

from .errors import SpeakerServiceError

logger = get_logger(Component.ATTACHMENTS)


class AttachmentFetcher:
    def __init__(self, http: aiohttp.ClientSession):
        self._http = http

    async def fetch(self, url: str) -> bytes:
        start_ts = time.time()
        try:
            async with self._http.get(url) as resp:
                if not 200 <= resp.status < 300:
                    raise SpeakerServiceError(
                        f"Could not download attachment: {resp.status}",
                        status=resp.status,
                    )
                body = await resp.read()
        except asyncio.TimeoutError as e:
            raise SpeakerServiceError("Could not download attachment: timed out") from e
        except aiohttp.ClientError as e:
            raise SpeakerServiceError(f"Could not download attachment: {e}") from e

        logger.info(
            "Attachment downloaded",
            size_bytes=len(body),
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return body
