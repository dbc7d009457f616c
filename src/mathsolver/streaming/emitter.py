"""Single-shot Server-Sent Events stream around one Gemini solve call."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator

import httpx

from ..config import Settings
from ..gemini import Deadline, GeminiClient
from ..media import InlineMedia, fetch_image, inline_image, redact_url
from ..prompts import solve_payload
from ..schemas.solve import SolveRequest
from ..text.normalizer import normalize_response
from .heartbeat import Heartbeat
from .types import SseEvent

logger = logging.getLogger(__name__)

# Key under which the normalized answer rides along with the raw model payload.
ANNOTATION_KEY = "__copilot"

OPEN_EVENT = "open"
DONE_EVENT = "done"
ERROR_EVENT = "error"
STARTING_DATA = json.dumps({"status": "starting"}, separators=(",", ":"))
COMPLETE_DATA = json.dumps(["complete"])
HEARTBEAT_COMMENT = "hb"


def error_event(message: str) -> SseEvent:
    return {
        "event": ERROR_EVENT,
        "data": json.dumps({"error": message}, ensure_ascii=False),
    }


class StreamEmitter:
    """Wrap one upstream model call in a short, well-formed SSE stream.

    Emission order:

    1. a padding comment so buffering proxies flush the first bytes,
    2. ``:ok`` and an ``open`` event with ``{"status":"starting"}``,
    3. ``:hb`` comments every ``heartbeat_interval_seconds`` while work runs,
    4. one ``data`` frame holding the raw model response annotated with the
       normalized answer, followed by ``event: done``,
    5. or, on any failure, a single ``event: error`` frame.
    """

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

    def preamble(self) -> list[SseEvent]:
        events: list[SseEvent] = []
        padding = self._settings.stream_padding_bytes
        if padding:
            events.append({"comment": " " * padding})
        events.append({"comment": "ok"})
        events.append({"event": OPEN_EVENT, "data": STARTING_DATA})
        return events

    async def stream(
        self, request: SolveRequest
    ) -> AsyncGenerator[SseEvent, None]:
        """Yield SSE event dictionaries; failures end in an ``error`` frame."""

        for event in self.preamble():
            yield event

        try:
            async with Heartbeat(
                self.solve(request), self._settings.heartbeat_interval_seconds
            ) as heartbeat:
                async for _ in heartbeat.ticks():
                    yield {"comment": HEARTBEAT_COMMENT}
                envelope = heartbeat.result()
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("Solve stream failed: %s", message)
            yield error_event(message)
            return

        yield {"data": json.dumps(envelope, ensure_ascii=False)}
        yield {"event": DONE_EVENT, "data": COMPLETE_DATA}

    async def solve(self, request: SolveRequest) -> dict[str, Any]:
        """Resolve the image, call the model and annotate the raw response."""

        deadline = Deadline(self._settings.solve_deadline_seconds)
        media = await self.resolve_image(request)
        payload = solve_payload(media, request.locale)
        result = await self._gemini.generate_with_fallback(payload, deadline=deadline)

        answer = normalize_response(result.payload)
        logger.info(
            "Solved with %s in %.2fs (candidates=%s, finish=%s)",
            result.model,
            deadline.elapsed,
            answer.candidates_count,
            answer.finish_reason,
        )
        annotation = answer.to_wire()
        annotation["usedModel"] = result.model
        return {**result.payload, ANNOTATION_KEY: annotation}

    async def resolve_image(self, request: SolveRequest) -> InlineMedia:
        if request.image_base64:
            return inline_image(request.image_base64, request.mime_type)

        assert request.image_url is not None
        logger.debug("Fetching image from %s", redact_url(request.image_url))
        if self._media_client is not None:
            return await self._fetch(self._media_client, request.image_url)
        async with httpx.AsyncClient(follow_redirects=True) as client:
            return await self._fetch(client, request.image_url)

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> InlineMedia:
        return await fetch_image(
            client,
            url,
            timeout_seconds=self._settings.image_fetch_timeout_seconds,
            max_bytes=self._settings.image_max_bytes,
        )


__all__ = [
    "ANNOTATION_KEY",
    "COMPLETE_DATA",
    "STARTING_DATA",
    "StreamEmitter",
    "error_event",
]
