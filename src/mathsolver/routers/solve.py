"""Math solving function routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from ..config import Settings, get_settings
from ..gemini import ConfigurationError, GeminiClient, require_api_key
from ..schemas.solve import SolveRequest, SyncSolveRequest
from ..services.solver import SolverService
from ..streaming import StreamEmitter
from .errors import FUNCTIONS_PREFIX, exception_response

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["solve"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_gemini_client(settings: Settings = Depends(get_settings)) -> GeminiClient:
    return GeminiClient(settings)


def get_stream_emitter(
    settings: Settings = Depends(get_settings),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> StreamEmitter:
    return StreamEmitter(settings, gemini)


def get_solver_service(
    settings: Settings = Depends(get_settings),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> SolverService:
    return SolverService(settings, gemini)


@router.post("/solve-math-stream", response_model=None, status_code=200)
async def solve_math_stream(
    payload: SolveRequest,
    settings: Settings = Depends(get_settings),
    emitter: StreamEmitter = Depends(get_stream_emitter),
) -> EventSourceResponse | JSONResponse:
    """Stream one solve as SSE: preamble, heartbeats, result, ``done``."""

    try:
        require_api_key(settings)
    except ConfigurationError as exc:
        return exception_response(exc)

    return EventSourceResponse(
        emitter.stream(payload),
        headers=STREAM_HEADERS,
        sep="\n",
    )


@router.post("/solve-math", response_model=None, status_code=200)
async def solve_math(
    payload: SyncSolveRequest,
    settings: Settings = Depends(get_settings),
    service: SolverService = Depends(get_solver_service),
) -> dict[str, Any] | JSONResponse:
    """Solve within a short deadline and return the answer as JSON."""

    try:
        require_api_key(settings)
        return await service.solve(payload)
    except Exception as exc:
        return exception_response(exc)


__all__ = [
    "get_gemini_client",
    "get_solver_service",
    "get_stream_emitter",
    "router",
]
