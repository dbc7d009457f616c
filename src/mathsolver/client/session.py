"""Client-side orchestration of one image analysis at a time."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any

from ..schemas.solve import MAX_STEPS
from ..text.sanitize import sanitize_math_text
from .collaborators import StorageBucket
from .functions import FunctionsClient, FunctionsError
from .sse_parser import ParseResult

logger = logging.getLogger(__name__)

SIGNED_URL_TTL_SECONDS = 300
DIAGNOSTIC_PAYLOAD_LIMIT = 400


class AnalysisState(str, enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    DECODED = "decoded"
    ERROR = "error"
    CANCELLED = "cancelled"


class AnalysisError(Exception):
    """The stream finished without a usable answer."""


@dataclass
class Analysis:
    name: str
    answer: str
    explanation: str
    steps: list[str] = field(default_factory=list)


def describe_failure(parsed: ParseResult) -> str:
    """Summarize an undecodable stream for display to the user."""

    block_reason = (parsed.prompt_feedback or {}).get("blockReason") or "none"
    sample = next(
        (payload for payload in parsed.payloads if "starting" not in payload), ""
    )
    return (
        "could not read an answer from the response "
        f"(events={parsed.sse_events}, textLen={len(parsed.combined_text)}, "
        f"blockReason={block_reason}, payload={sample[:DIAGNOSTIC_PAYLOAD_LIMIT]})"
    )


def build_analysis(name: str, parsed: ParseResult) -> Analysis:
    """Format a decoded stream for display, or raise ``AnalysisError``."""

    final: dict[str, Any] = parsed.final_json or {}
    answer = sanitize_math_text(str(final.get("answer") or ""))
    explanation = sanitize_math_text(str(final.get("explanation") or ""))
    if not answer and not explanation:
        raise AnalysisError(describe_failure(parsed))

    steps: list[str] = []
    raw_steps = final.get("steps")
    if isinstance(raw_steps, list):
        for step in raw_steps:
            cleaned = sanitize_math_text(str(step)) if step is not None else ""
            if cleaned:
                steps.append(cleaned)
    return Analysis(name=name, answer=answer, explanation=explanation, steps=steps[:MAX_STEPS])


class AnalysisSession:
    """Track the analysis of the currently selected item.

    Starting a new analysis cancels the one in flight. A superseded request
    ends as ``CANCELLED`` for its caller and never touches the session state.
    """

    def __init__(
        self,
        functions: FunctionsClient,
        *,
        storage: StorageBucket | None = None,
        locale: str = "ja",
        prefer_inline: bool = True,
    ):
        self._functions = functions
        self._storage = storage
        self._locale = locale
        self._prefer_inline = prefer_inline
        self._inflight: asyncio.Task[Analysis] | None = None
        self.state = AnalysisState.IDLE
        self.item_key: str | None = None
        self.analysis: Analysis | None = None
        self.error: str | None = None

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def analyze(self, item_key: str, name: str, url: str) -> Analysis | None:
        """Analyze one image; returns ``None`` when a newer request took over."""

        self.cancel()
        task = asyncio.create_task(self._run(item_key, name, url))
        self._inflight = task
        self.state = AnalysisState.REQUESTING
        self.item_key = item_key
        self.analysis = None
        self.error = None

        try:
            analysis = await task
        except asyncio.CancelledError:
            if self._inflight is task:
                # our caller was cancelled, not superseded
                self._inflight = None
                self.state = AnalysisState.CANCELLED
                raise
            logger.debug("Analysis of %s superseded", item_key)
            return None
        except (FunctionsError, AnalysisError) as exc:
            if self._inflight is task:
                self._inflight = None
                self.state = AnalysisState.ERROR
                self.error = _error_text(exc)
            raise

        if self._inflight is not task:
            return None
        self._inflight = None
        self.state = AnalysisState.DECODED
        self.analysis = analysis
        return analysis

    def cancel(self) -> None:
        task = self._inflight
        if task is not None and not task.done():
            task.cancel()
            self.state = AnalysisState.CANCELLED
        self._inflight = None

    async def _run(self, item_key: str, name: str, url: str) -> Analysis:
        source_url = await self._signed_url(item_key, url)
        body: dict[str, Any] = {"locale": self._locale}

        inline = None
        if self._prefer_inline:
            try:
                inline = await self._functions.fetch_image_base64(source_url)
            except FunctionsError as exc:
                logger.info("Inline image unavailable, sending URL instead: %s", exc)
        if inline is not None:
            body["imageBase64"], mime_type = inline
            if mime_type:
                body["mimeType"] = mime_type
        else:
            body["imageUrl"] = source_url

        reply = await self._functions.solve_stream(body)
        return build_analysis(name, reply.parsed)

    async def _signed_url(self, item_key: str, url: str) -> str:
        if self._storage is None:
            return url
        try:
            signed = await self._storage.create_signed_url(item_key, SIGNED_URL_TTL_SECONDS)
        except Exception as exc:
            logger.warning("Signed URL for %s failed, using public URL: %s", item_key, exc)
            return url
        return signed or url


def _error_text(exc: Exception) -> str:
    if isinstance(exc, FunctionsError) and exc.context:
        return f"{exc.message}\ncontext: {exc.context[:DIAGNOSTIC_PAYLOAD_LIMIT]}"
    return str(exc)


__all__ = [
    "Analysis",
    "AnalysisError",
    "AnalysisSession",
    "AnalysisState",
    "build_analysis",
    "describe_failure",
]
