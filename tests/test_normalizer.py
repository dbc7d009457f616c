from __future__ import annotations

import json
from typing import Any

from mathsolver.text.normalizer import (
    EmptyContent,
    EntryListContent,
    PartsContent,
    classify_content,
    collect_candidate_texts,
    extract_json_object,
    normalize_response,
)


def _response(*texts: str, **extra: Any) -> dict[str, Any]:
    return {
        "candidates": [
            {"content": {"parts": [{"text": text} for text in texts]}, "finishReason": "STOP"}
        ],
        **extra,
    }


def test_structured_json_answer_is_sanitized() -> None:
    text = json.dumps(
        {
            "answer": "$x = 3$",
            "explanation": "**両辺**を2で割る。",
            "steps": ["2x = 6", "", "x = 3"],
        },
        ensure_ascii=False,
    )

    answer = normalize_response(_response(text))

    assert answer.answer == "x = 3"
    assert answer.explanation == "両辺を2で割る。"
    assert answer.steps == ["2x = 6", "x = 3"]
    assert answer.finish_reason == "STOP"
    assert answer.candidates_count == 1
    assert answer.prompt_feedback is None


def test_json_inside_code_fence_is_found() -> None:
    answer = normalize_response(_response('```json\n{"answer": "5"}\n```'))

    assert answer.answer == "5"
    assert answer.explanation == ""


def test_steps_are_capped() -> None:
    text = json.dumps({"answer": "1", "steps": [f"step {i}" for i in range(12)]})

    answer = normalize_response(_response(text))

    assert answer.steps is not None
    assert len(answer.steps) == 8
    assert answer.steps[-1] == "step 7"


def test_free_text_falls_back_to_heuristics() -> None:
    text = "解き方\n1. 2x = 6\n2. x = 3\n答え: x = 3。以上"

    answer = normalize_response(_response(text))

    assert answer.answer == "x = 3"
    assert answer.steps == ["2x = 6", "x = 3"]
    assert answer.explanation.startswith("解き方\n2x = 6")


def test_english_answer_label() -> None:
    answer = normalize_response({"candidates": [{"output_text": "Answer: 42"}]})

    assert answer.answer == "42"
    assert answer.explanation == "Answer: 42"


def test_entry_list_content_is_collected() -> None:
    candidate = {"content": [{"parts": [{"text": " a "}]}, {"text": "b"}, {"text": "  "}]}

    assert collect_candidate_texts(candidate) == ["a", "b"]


def test_inline_data_parts_are_labelled() -> None:
    candidate = {
        "content": {
            "parts": [
                {"text": "see"},
                {"inlineData": {"mimeType": "image/png", "data": "AAAA"}},
            ]
        }
    }

    assert collect_candidate_texts(candidate) == ["see", "[inlineData:image/png]"]


def test_duplicate_texts_across_candidates_are_merged() -> None:
    raw = {
        "candidates": [
            {"content": {"parts": [{"text": "same"}]}},
            {"content": {"parts": [{"text": "same"}]}, "finishReason": "MAX_TOKENS"},
        ]
    }

    answer = normalize_response(raw)

    assert answer.explanation == "same"
    assert answer.candidates_count == 2
    assert answer.finish_reason == "MAX_TOKENS"


def test_prompt_feedback_is_kept_only_when_object() -> None:
    blocked = normalize_response({"promptFeedback": {"blockReason": "SAFETY"}})
    odd = normalize_response({"promptFeedback": "SAFETY"})

    assert blocked.prompt_feedback == {"blockReason": "SAFETY"}
    assert blocked.is_empty
    assert odd.prompt_feedback is None


def test_malformed_input_never_raises() -> None:
    for raw in (None, "text", [], {"candidates": "nope"}, {"candidates": [None, 3]}):
        answer = normalize_response(raw)
        assert answer.is_empty


def test_wire_form_always_carries_finish_reason_and_feedback() -> None:
    wire = normalize_response({}).to_wire()

    assert wire["finishReason"] is None
    assert wire["promptFeedback"] is None
    assert wire["candidatesCount"] == 0
    assert "steps" not in wire


def test_classify_content_shapes() -> None:
    assert isinstance(classify_content({"parts": []}), PartsContent)
    assert isinstance(classify_content([{"text": "x"}]), EntryListContent)
    assert isinstance(classify_content("x"), EmptyContent)


def test_extract_json_object_rejects_non_objects() -> None:
    assert extract_json_object('prefix {"a": 1} suffix') == {"a": 1}
    assert extract_json_object("[1, 2]") is None
    assert extract_json_object("{broken") is None
    assert extract_json_object(None) is None


def test_labelled_answer_with_numbered_lines() -> None:
    text = "まず整理する。\n1) 6 を移項\n2) 両辺を7で割る\n3) 約分する\n答え: 42"

    answer = normalize_response(_response(text))

    assert answer.answer == "42"
    assert answer.steps is not None
    assert len(answer.steps) == 3
