from __future__ import annotations

import json

from mathsolver.client.sse_parser import parse_stream

STRUCTURED = {"answer": "5", "explanation": "2+3=5", "steps": ["2+3", "5"]}


def sse(*payloads: str, crlf: bool = False) -> str:
    body = "".join(f"data: {payload}\n\n" for payload in payloads)
    return body.replace("\n", "\r\n") if crlf else body


def model_envelope(text: str, **extra) -> str:
    return json.dumps(
        {"candidates": [{"content": {"parts": [{"text": text}]}}], **extra},
        ensure_ascii=False,
    )


def test_structured_event_becomes_final_json() -> None:
    body = sse('{"status":"starting"}', json.dumps(STRUCTURED))

    result = parse_stream(body)

    assert result.sse_events == 2
    assert result.final_json == STRUCTURED
    assert result.payloads == ['{"status":"starting"}', json.dumps(STRUCTURED)]


def test_plain_json_body_matches_structured_event_result() -> None:
    as_events = parse_stream(sse('{"status":"starting"}', json.dumps(STRUCTURED)))
    as_json = parse_stream(json.dumps(STRUCTURED))

    assert as_json.sse_events == 0
    assert as_json.final_json == as_events.final_json


def test_crlf_line_endings_are_accepted() -> None:
    body = sse('{"status":"starting"}', json.dumps(STRUCTURED), crlf=True)

    result = parse_stream(body)

    assert result.sse_events == 2
    assert result.final_json == STRUCTURED


def test_done_sentinel_and_blank_payloads_are_ignored() -> None:
    body = sse("", "[DONE]") + "data:\n\n"

    result = parse_stream(body)

    assert result.sse_events == 3
    assert result.payloads == []
    assert result.final_json is None
    assert not result.has_content


def test_malformed_payloads_are_skipped() -> None:
    body = sse("{not json", json.dumps(STRUCTURED), "also bad")

    result = parse_stream(body)

    assert result.final_json == STRUCTURED
    assert len(result.payloads) == 3


def test_comments_and_event_names_are_not_data() -> None:
    body = ": " + " " * 2048 + "\n\n:ok\n\nevent: open\ndata: {}\n\n:hb\n\n"

    result = parse_stream(body)

    assert result.sse_events == 1
    assert result.final_json is None


def test_model_text_json_is_extracted_from_candidates() -> None:
    text = 'Here you go: {"answer": "x=2", "explanation": "subtract 1"}'

    result = parse_stream(sse(model_envelope(text)))

    assert result.final_json == {"answer": "x=2", "explanation": "subtract 1"}
    assert result.combined_text == text


def test_annotation_takes_priority_over_model_text() -> None:
    envelope = model_envelope(
        '{"answer": "$x=3$", "explanation": "raw"}',
        promptFeedback={"safetyRatings": []},
        __copilot={
            "answer": "x=3",
            "explanation": "cleaned",
            "steps": ["x=3"],
            "finishReason": "STOP",
            "candidatesCount": 1,
            "promptFeedback": None,
            "usedModel": "gemini-2.5-flash",
        },
    )

    result = parse_stream(sse('{"status":"starting"}', envelope, '["complete"]'))

    assert result.sse_events == 3
    assert result.final_json == {
        "answer": "x=3",
        "explanation": "cleaned",
        "steps": ["x=3"],
        "finishReason": "STOP",
        "candidatesCount": 1,
        "promptFeedback": {"safetyRatings": []},
    }
    assert result.prompt_feedback == {"safetyRatings": []}


def test_annotation_explanation_fills_missing_text() -> None:
    envelope = json.dumps({"__copilot": {"answer": "", "explanation": "only here"}})

    result = parse_stream(sse(envelope))

    assert result.combined_text == "only here"
    assert result.final_json is not None
    assert result.final_json["explanation"] == "only here"


def test_free_text_becomes_explanation() -> None:
    result = parse_stream(sse(json.dumps({"text": "the answer is 4"})))

    assert result.final_json == {"answer": "", "explanation": "the answer is 4"}


def test_texts_from_several_events_are_combined() -> None:
    result = parse_stream(sse(model_envelope("first"), model_envelope("second")))

    assert result.combined_text == "first\nsecond"


def test_prompt_feedback_without_content() -> None:
    body = sse(json.dumps({"promptFeedback": {"blockReason": "SAFETY"}}))

    result = parse_stream(body)

    assert result.prompt_feedback == {"blockReason": "SAFETY"}
    assert result.final_json is None


def test_garbage_input_yields_empty_result() -> None:
    for body in (None, "", "   ", "<html>oops</html>", "[1, 2, 3]"):
        result = parse_stream(body)
        assert result.final_json is None
        assert result.sse_events == 0


def test_json_split_across_payloads_is_recovered() -> None:
    body = sse(
        json.dumps({"text": '{"answer": "5",'}),
        json.dumps({"text": '"explanation": "e"}'}),
    )

    result = parse_stream(body)

    assert result.final_json == {"answer": "5", "explanation": "e"}
    assert result.has_content


def test_last_complete_json_wins_when_payloads_differ() -> None:
    body = sse(
        json.dumps({"text": '{"answer": "1"}'}),
        json.dumps({"text": '{"answer": "2"}'}),
    )

    assert parse_stream(body).final_json == {"answer": "2"}
