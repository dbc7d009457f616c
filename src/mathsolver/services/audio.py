"""Transcription and summarization backed by Gemini."""

from __future__ import annotations

import logging

import httpx

from ..config import Settings
from ..gemini import Deadline, GeminiClient
from ..media import InlineMedia, fetch_audio, redact_url, scaled_timeout
from ..prompts import clamp_sentences, summarize_payload, transcribe_payload
from ..schemas.audio import SummarizeRequest, TranscribeRequest

logger = logging.getLogger(__name__)


class AudioService:
    """Turn stored audio into text and text into short summaries."""

    def __init__(
        self,
        settings: Settings,
        gemini: GeminiClient,
        *,
        media_client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._gemini = gemini
        self._media_client = media_client

    async def transcribe(self, request: TranscribeRequest) -> str:
        deadline = Deadline(self._settings.transcribe_deadline_seconds)
        media = await self._load_audio(request, deadline)
        logger.info(
            "Transcribing %s (%d bytes, %s)",
            redact_url(request.audio_url),
            media.size_bytes,
            media.mime_type,
        )
        return await self._gemini.generate_with_retry(
            transcribe_payload(media, request.locale),
            deadline=deadline,
            empty_message="transcript was empty",
        )

    async def summarize(self, request: SummarizeRequest) -> str:
        deadline = Deadline(self._settings.summarize_deadline_seconds)
        max_sentences = clamp_sentences(request.max_sentences)
        payload = summarize_payload(
            request.transcript,
            request.locale,
            max_sentences,
            max_chars=self._settings.summary_max_input_chars,
        )
        return await self._gemini.generate_with_retry(
            payload,
            deadline=deadline,
            empty_message="summary was empty",
        )

    async def _load_audio(
        self, request: TranscribeRequest, deadline: Deadline
    ) -> InlineMedia:
        timeout = scaled_timeout(deadline.seconds, low=2.5, high=7.0)
        if self._media_client is not None:
            return await self._fetch(self._media_client, request, timeout)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._fetch(client, request, timeout)

    async def _fetch(
        self, client: httpx.AsyncClient, request: TranscribeRequest, timeout: float
    ) -> InlineMedia:
        return await fetch_audio(
            client,
            request.audio_url,
            mime_hint=request.mime_type,
            timeout_seconds=timeout,
            max_bytes=self._settings.audio_max_bytes,
        )


__all__ = ["AudioService"]
