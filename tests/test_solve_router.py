from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import make_settings
from mathsolver.app import create_app
from mathsolver.client.sse_parser import parse_stream
from mathsolver.config import Settings, get_settings
from mathsolver.gemini import DeadlineExceeded, GeminiClient, GeminiError
from mathsolver.routers.errors import ERROR_HEADER, install_error_handlers
from mathsolver.routers.solve import get_solver_service, get_stream_emitter, router
from mathsolver.services.solver import SolverService
from mathsolver.streaming import StreamEmitter
from test_emitter import PNG_B64, PNG_BYTES, FakeGemini, gemini_body

STREAM_PATH = "/functions/v1/solve-math-stream"
SYNC_PATH = "/functions/v1/solve-math"


def make_app(
    settings: Settings | None = None,
    overrides: dict[Callable[..., Any], Callable[..., Any]] | None = None,
) -> FastAPI:
    resolved = settings or make_settings()
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(router)
    app.dependency_overrides[get_settings] = lambda: resolved
    app.dependency_overrides.update(overrides or {})
    return app


def stream_client(gemini: Any, settings: Settings | None = None) -> TestClient:
    settings = settings or make_settings()
    emitter = StreamEmitter(settings, gemini)
    return TestClient(make_app(settings, {get_stream_emitter: lambda: emitter}))


def test_stream_emits_sse_that_the_client_decodes() -> None:
    client = stream_client(FakeGemini())

    response = client.post(STREAM_PATH, json={"imageBase64": PNG_B64, "mimeType": "image/png"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert "no-cache" in response.headers["cache-control"]
    assert response.headers["x-accel-buffering"] == "no"

    body = response.text
    assert body.index("event: open") < body.index("event: done")
    assert '{"status":"starting"}' in body

    parsed = parse_stream(body)
    assert parsed.sse_events == 3
    assert parsed.final_json is not None
    assert parsed.final_json["answer"] == "x=3"
    assert parsed.final_json["explanation"] == "両辺を2で割る。"
    assert parsed.final_json["steps"] == ["2x=6", "x=3"]


def test_stream_failure_is_reported_in_band() -> None:
    client = stream_client(FakeGemini(error=GeminiError(500, "gemini error: 500 boom")))

    response = client.post(STREAM_PATH, json={"imageBase64": PNG_B64})

    assert response.status_code == 200
    assert "event: error" in response.text
    assert "event: done" not in response.text
    assert parse_stream(response.text).final_json is None


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({}, "imageUrl or imageBase64 is required"),
        (
            {"imageUrl": "https://cdn.test/a.png", "imageBase64": PNG_B64},
            "provide only one of imageUrl or imageBase64",
        ),
    ],
)
def test_stream_rejects_invalid_bodies(body: dict, message: str) -> None:
    client = stream_client(FakeGemini())

    response = client.post(STREAM_PATH, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": message}
    assert response.headers[ERROR_HEADER] == message


def test_stream_rejects_other_methods() -> None:
    client = stream_client(FakeGemini())

    response = client.get(STREAM_PATH)

    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


def test_stream_requires_api_key() -> None:
    settings = make_settings(gemini_api_key=None)
    gemini = FakeGemini()
    client = stream_client(gemini, settings)

    response = client.post(STREAM_PATH, json={"imageBase64": PNG_B64})

    assert response.status_code == 500
    assert response.json() == {"error": "GEMINI_API_KEY is not set"}
    assert gemini.payloads == []


def _sync_service(model_text: str, settings: Settings) -> SolverService:
    def gemini_handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert "generationConfig" not in payload
        return httpx.Response(200, json=gemini_body(model_text))

    def media_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=PNG_BYTES)

    gemini = GeminiClient(
        settings,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(gemini_handler)),
    )
    return SolverService(
        settings,
        gemini,
        media_client=httpx.AsyncClient(transport=httpx.MockTransport(media_handler)),
    )


def test_sync_solve_returns_cleaned_json() -> None:
    settings = make_settings()
    service = _sync_service(
        '{"answer": "$4$", "explanation": "**2+2**", "confidence": "high"}', settings
    )
    client = TestClient(make_app(settings, {get_solver_service: lambda: service}))

    response = client.post(SYNC_PATH, json={"imageUrl": "https://cdn.test/a"})

    assert response.status_code == 200
    assert response.json() == {
        "answer": "4",
        "explanation": "2+2",
        "confidence": "high",
        "finishReason": "STOP",
    }


def test_sync_solve_requires_image_url() -> None:
    client = TestClient(make_app())

    response = client.post(SYNC_PATH, json={})

    assert response.status_code == 400
    assert response.json() == {"error": "imageUrl is required"}


def test_sync_solve_maps_deadline_to_504() -> None:
    class SlowService:
        async def solve(self, request):
            raise DeadlineExceeded("deadline too short (remain 300ms)")

    client = TestClient(make_app(overrides={get_solver_service: lambda: SlowService()}))

    response = client.post(SYNC_PATH, json={"imageUrl": "https://cdn.test/a"})

    assert response.status_code == 504
    assert response.json() == {"error": "deadline too short (remain 300ms)"}
    assert response.headers[ERROR_HEADER] == "deadline too short (remain 300ms)"


def test_sync_solve_maps_upstream_error_to_500() -> None:
    class BrokenService:
        async def solve(self, request):
            raise GeminiError(503, "gemini error: 503 overloaded")

    client = TestClient(make_app(overrides={get_solver_service: lambda: BrokenService()}))

    response = client.post(SYNC_PATH, json={"imageUrl": "https://cdn.test/a"})

    assert response.status_code == 500
    assert response.json() == {"error": "gemini error: 503 overloaded"}


def test_app_factory_serves_health_and_cors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    monkeypatch.setenv("GEMINI_MODEL", "gemini-test")

    with TestClient(create_app()) as client:
        health = client.get("/health")
        preflight = client.options(
            STREAM_PATH,
            headers={
                "Origin": "https://app.test",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "apikey, content-type",
            },
        )

    assert health.json() == {
        "status": "ok",
        "model": "gemini-test",
        "fallback_model": "gemini-2.5-pro",
        "configured": True,
    }
    assert preflight.status_code == 200
    assert preflight.headers["access-control-allow-origin"] == "*"
