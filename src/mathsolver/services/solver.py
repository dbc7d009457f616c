"""Non-streaming solve: fetch the image, call Gemini once, return JSON."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from ..config import Settings
from ..gemini import Deadline, GeminiClient, GeminiError
from ..media import InlineMedia, fetch_image, scaled_timeout
from ..prompts import solve_payload
from ..schemas.solve import SyncSolveRequest
from ..text.normalizer import (
    combine_candidate_texts,
    extract_json_object,
    normalize_response,
    response_candidates,
)

logger = logging.getLogger(__name__)

SERVER_ERROR_RETRY_DELAY = 0.8


class SolverService:
    """Short-deadline solver used by clients that cannot consume SSE."""

    def __init__(
        self,
        settings: Settings,
        gemini: GeminiClient,
        *,
        media_client: httpx.AsyncClient | None = None,
        sleep=asyncio.sleep,
    ):
        self._settings = settings
        self._gemini = gemini
        self._media_client = media_client
        self._sleep = sleep

    async def solve(self, request: SyncSolveRequest) -> dict[str, Any]:
        deadline = Deadline(self._settings.solve_sync_deadline_seconds)
        media = await self._load_image(request.image_url, deadline)
        payload = solve_payload(media, request.locale, json_output=False)
        model = self._settings.gemini_model

        timeout = deadline.budget(reserve=0.5, minimum=1.5)
        try:
            body = await self._gemini.generate(model, payload, timeout=timeout)
        except GeminiError as exc:
            if exc.status_code < 500:
                raise
            logger.info("Gemini returned %s; retrying once", exc.status_code)
            await self._sleep(SERVER_ERROR_RETRY_DELAY)
            timeout = deadline.budget(reserve=0.3, minimum=1.2)
            body = await self._gemini.generate(model, payload, timeout=timeout)

        answer = normalize_response(body)
        # keep any extra keys the model returned next to the cleaned fields
        combined = combine_candidate_texts(response_candidates(body))
        extra = extract_json_object(combined) or {}
        result = {**extra, **answer.model_dump(by_alias=True, exclude_none=True)}
        result.pop("promptFeedback", None)
        result.pop("candidatesCount", None)
        return result

    async def _load_image(self, url: str, deadline: Deadline) -> InlineMedia:
        timeout = scaled_timeout(deadline.seconds, low=1.5, high=3.0)
        if self._media_client is not None:
            return await fetch_image(
                self._media_client,
                url,
                timeout_seconds=timeout,
                max_bytes=self._settings.image_max_bytes,
            )
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await fetch_image(
                client,
                url,
                timeout_seconds=timeout,
                max_bytes=self._settings.image_max_bytes,
            )


__all__ = ["SolverService"]
