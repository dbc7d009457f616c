"""Turn raw Gemini ``generateContent`` payloads into structured answers.

Gemini scatters text across several response shapes: the usual
``candidate.content.parts`` object, an array of content entries (each with
its own ``parts`` or a bare ``text``), and an ``output_text`` shortcut. Each
shape gets a small adapter below instead of ad-hoc optional chaining.

Two decoding strategies follow. The *structured path* parses the JSON object
the prompt asks for. When the model ignored that instruction the *heuristic
path* recovers what it can from free text. The heuristic path is lossy by
nature and only aims to keep the answer readable.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence, Union

from ..schemas.solve import MAX_STEPS, StructuredAnswer
from .sanitize import sanitize_math_text

logger = logging.getLogger(__name__)

_ANSWER_LABEL = re.compile(r"(?:答え|解答|Answer|Solution)\s*[:：]\s*(.+)", re.IGNORECASE)
_ANSWER_END = re.compile(r"\n|。")
_STEP_MARKER = re.compile(r"^(?:\d+\.|\d+\)|・|-|[①②③④⑤])")


@dataclass(frozen=True)
class PartsContent:
    """``content`` is an object holding a ``parts`` list."""

    parts: tuple[Any, ...]
    text: str | None = None


@dataclass(frozen=True)
class EntryListContent:
    """``content`` is a list of entries, each with ``parts`` or ``text``."""

    entries: tuple[Any, ...]


@dataclass(frozen=True)
class EmptyContent:
    """No recognizable content."""


CandidateContent = Union[PartsContent, EntryListContent, EmptyContent]


def classify_content(content: Any) -> CandidateContent:
    if isinstance(content, Mapping):
        parts = content.get("parts")
        text = content.get("text")
        return PartsContent(
            parts=tuple(parts) if isinstance(parts, list) else (),
            text=text if isinstance(text, str) else None,
        )
    if isinstance(content, list):
        return EntryListContent(entries=tuple(content))
    return EmptyContent()


def _part_fragments(part: Any) -> list[str]:
    if not isinstance(part, Mapping):
        return []
    fragments: list[str] = []
    text = part.get("text")
    if isinstance(text, str):
        fragments.append(text)
    inline = part.get("inlineData")
    if isinstance(inline, Mapping) and inline.get("data"):
        mime_type = inline.get("mimeType") or "binary"
        fragments.append(f"[inlineData:{mime_type}]")
    return fragments


def _content_fragments(content: CandidateContent) -> list[str]:
    fragments: list[str] = []
    if isinstance(content, PartsContent):
        for part in content.parts:
            fragments.extend(_part_fragments(part))
        if content.text:
            fragments.append(content.text)
    elif isinstance(content, EntryListContent):
        for entry in content.entries:
            if isinstance(entry, Mapping) and isinstance(entry.get("parts"), list):
                for part in entry["parts"]:
                    fragments.extend(_part_fragments(part))
            else:
                fragments.extend(_part_fragments(entry))
    return fragments


def collect_candidate_texts(candidate: Any) -> list[str]:
    """Return the non-blank, stripped text fragments of one candidate."""

    if not isinstance(candidate, Mapping):
        return []
    fragments = _content_fragments(classify_content(candidate.get("content")))
    output_text = candidate.get("output_text")
    if output_text:
        fragments.append(str(output_text))
    return [fragment.strip() for fragment in fragments if fragment.strip()]


def response_candidates(raw: Any) -> list[Any]:
    if not isinstance(raw, Mapping):
        return []
    candidates = raw.get("candidates")
    return list(candidates) if isinstance(candidates, list) else []


def combine_candidate_texts(candidates: Iterable[Any]) -> str:
    """Join the distinct fragments of every candidate with newlines."""

    texts: list[str] = []
    for candidate in candidates:
        for fragment in collect_candidate_texts(candidate):
            if fragment not in texts:
                texts.append(fragment)
    return "\n".join(texts).strip()


def extract_json_object(text: str | None) -> dict[str, Any] | None:
    """Parse the text between the first ``{`` and the last ``}``, if any."""

    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        value = json.loads(text[start : end + 1])
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def _as_text(value: Any) -> str:
    return "" if value is None else str(value)


def structured_fields(value: Mapping[str, Any]) -> dict[str, Any]:
    """Sanitize the ``answer``/``explanation``/``steps`` of a parsed object."""

    raw_steps = value.get("steps")
    steps: list[str] = []
    if isinstance(raw_steps, list):
        for item in raw_steps:
            cleaned = sanitize_math_text(_as_text(item))
            if cleaned:
                steps.append(cleaned)
            if len(steps) >= MAX_STEPS:
                break
    return {
        "answer": sanitize_math_text(_as_text(value.get("answer"))),
        "explanation": sanitize_math_text(_as_text(value.get("explanation"))),
        "steps": steps or None,
    }


def heuristic_fields(combined_text: str) -> dict[str, Any]:
    """Best-effort recovery of answer and steps from free-form text."""

    explanation = sanitize_math_text(combined_text)
    answer = ""
    if explanation:
        match = _ANSWER_LABEL.search(explanation)
        if match:
            answer = sanitize_math_text(_ANSWER_END.split(match.group(1))[0].strip())

    steps: list[str] = []
    for line in combined_text.splitlines():
        stripped = line.strip()
        if not stripped or not _STEP_MARKER.match(stripped):
            continue
        cleaned = sanitize_math_text(stripped)
        if cleaned:
            steps.append(cleaned)
        if len(steps) >= MAX_STEPS:
            break

    return {"answer": answer, "explanation": explanation, "steps": steps or None}


def _first_finish_reason(candidates: Sequence[Any]) -> str | None:
    for candidate in candidates:
        if isinstance(candidate, Mapping) and candidate.get("finishReason"):
            return str(candidate["finishReason"])
    return None


def normalize_response(raw: Any) -> StructuredAnswer:
    """Decode a raw model response; never raises on malformed content."""

    candidates = response_candidates(raw)
    combined_text = combine_candidate_texts(candidates)

    parsed = extract_json_object(combined_text)
    if parsed is not None:
        fields = structured_fields(parsed)
    else:
        if combined_text:
            logger.debug(
                "Model text was not JSON; using heuristic extraction (%d chars)",
                len(combined_text),
            )
        fields = heuristic_fields(combined_text)

    prompt_feedback = raw.get("promptFeedback") if isinstance(raw, Mapping) else None
    return StructuredAnswer(
        **fields,
        finish_reason=_first_finish_reason(candidates),
        prompt_feedback=prompt_feedback if isinstance(prompt_feedback, dict) else None,
        candidates_count=len(candidates),
    )


__all__ = [
    "CandidateContent",
    "EmptyContent",
    "EntryListContent",
    "PartsContent",
    "classify_content",
    "collect_candidate_texts",
    "combine_candidate_texts",
    "extract_json_object",
    "heuristic_fields",
    "normalize_response",
    "response_candidates",
    "structured_fields",
]
