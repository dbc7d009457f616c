"""Decode a fully buffered solve response (SSE or plain JSON).

The solve stream carries a single logical result, so the client reads the
whole body first and parses it in one pass. Nothing here raises: malformed
payloads are skipped and an empty result tells the caller there was no usable
content.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..streaming.emitter import ANNOTATION_KEY
from ..text.normalizer import collect_candidate_texts, extract_json_object

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"


@dataclass
class ParseResult:
    final_json: dict[str, Any] | None = None
    sse_events: int = 0
    combined_text: str = ""
    payloads: list[str] = field(default_factory=list)
    prompt_feedback: dict[str, Any] | None = None

    @property
    def has_content(self) -> bool:
        final = self.final_json or {}
        return bool(final.get("answer") or final.get("explanation"))


@dataclass
class _Accumulator:
    """Mutable scan state shared by every payload of one body."""

    texts: list[str] = field(default_factory=list)
    text_json: dict[str, Any] | None = None
    annotated_json: dict[str, Any] | None = None
    prompt_feedback: dict[str, Any] | None = None

    @property
    def combined_text(self) -> str:
        return "\n".join(self.texts)


def _payload_text(payload: Mapping[str, Any]) -> str:
    candidates = payload.get("candidates")
    if isinstance(candidates, list) and candidates:
        text = "\n".join(collect_candidate_texts(candidates[0]))
        if text:
            return text
    text = payload.get("text")
    return text if isinstance(text, str) else ""


def _annotated_result(
    annotation: Mapping[str, Any], prompt_feedback: dict[str, Any] | None
) -> dict[str, Any] | None:
    if not (annotation.get("answer") or annotation.get("explanation")):
        return None
    return {
        "answer": annotation.get("answer") or "",
        "explanation": annotation.get("explanation") or "",
        "steps": annotation.get("steps"),
        "finishReason": annotation.get("finishReason"),
        "candidatesCount": annotation.get("candidatesCount"),
        "promptFeedback": annotation.get("promptFeedback") or prompt_feedback,
    }


def _feed_payload(payload: Any, acc: _Accumulator) -> None:
    if not isinstance(payload, dict):
        return

    annotation = payload.get(ANNOTATION_KEY)
    if not isinstance(annotation, dict):
        annotation = None

    if acc.prompt_feedback is None:
        feedback = payload.get("promptFeedback")
        if feedback is None and annotation is not None:
            feedback = annotation.get("promptFeedback")
        if isinstance(feedback, dict):
            acc.prompt_feedback = feedback

    text = _payload_text(payload)
    if not text.strip() and annotation is not None:
        explanation = annotation.get("explanation")
        if isinstance(explanation, str) and explanation.strip():
            text = explanation

    if text:
        acc.texts.append(text)
        # an object may span several payloads; the current one alone is the fallback
        parsed = extract_json_object(acc.combined_text) or extract_json_object(text)
        if parsed is not None:
            acc.text_json = parsed
    elif "answer" in payload or "explanation" in payload:
        # a bare structured answer with no model envelope around it
        acc.text_json = payload

    if annotation is not None and acc.annotated_json is None:
        acc.annotated_json = _annotated_result(annotation, acc.prompt_feedback)


def _data_lines(event: str) -> list[str]:
    return [line for line in event.split("\n") if line.startswith(DATA_PREFIX)]


def parse_stream(body: str | None) -> ParseResult:
    """Parse a buffered response body into a :class:`ParseResult`."""

    normalized = (body or "").replace("\r\n", "\n").replace("\r", "\n")
    result = ParseResult()
    acc = _Accumulator()

    for event in normalized.split("\n\n"):
        lines = _data_lines(event)
        if not lines:
            continue
        result.sse_events += len(lines)
        for line in lines:
            payload = line[len(DATA_PREFIX) :].strip()
            if not payload or payload == DONE_SENTINEL:
                continue
            result.payloads.append(payload)
            try:
                decoded = json.loads(payload)
            except ValueError:
                logger.debug("Skipping non-JSON SSE payload (%d chars)", len(payload))
                continue
            _feed_payload(decoded, acc)

    if not result.sse_events and normalized.strip():
        # not an event stream; retry the whole body as one JSON document
        try:
            decoded = json.loads(normalized)
        except ValueError:
            decoded = None
        if decoded is not None:
            result.payloads.append(normalized)
            _feed_payload(decoded, acc)

    result.combined_text = acc.combined_text
    result.prompt_feedback = acc.prompt_feedback
    result.final_json = acc.annotated_json or acc.text_json
    if result.final_json is None and result.combined_text.strip():
        result.final_json = {"answer": "", "explanation": result.combined_text}
    return result


__all__ = ["DONE_SENTINEL", "ParseResult", "parse_stream"]
