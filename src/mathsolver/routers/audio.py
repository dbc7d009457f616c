"""Transcription and summarization function routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..gemini import GeminiClient, require_api_key
from ..schemas.audio import (
    SummarizeRequest,
    SummarizeResponse,
    TranscribeRequest,
    TranscribeResponse,
)
from ..services.audio import AudioService
from .errors import FUNCTIONS_PREFIX, exception_response
from .solve import get_gemini_client

router = APIRouter(prefix=FUNCTIONS_PREFIX, tags=["audio"])


def get_audio_service(
    settings: Settings = Depends(get_settings),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> AudioService:
    return AudioService(settings, gemini)


@router.post("/transcribe-audio", response_model=None)
async def transcribe_audio(
    payload: TranscribeRequest,
    settings: Settings = Depends(get_settings),
    service: AudioService = Depends(get_audio_service),
) -> TranscribeResponse | JSONResponse:
    try:
        require_api_key(settings)
        transcript = await service.transcribe(payload)
    except Exception as exc:
        return exception_response(exc)
    return TranscribeResponse(transcript=transcript)


@router.post("/summarize-text", response_model=None)
async def summarize_text(
    payload: SummarizeRequest,
    settings: Settings = Depends(get_settings),
    service: AudioService = Depends(get_audio_service),
) -> SummarizeResponse | JSONResponse:
    try:
        require_api_key(settings)
        summary = await service.summarize(payload)
    except Exception as exc:
        return exception_response(exc)
    return SummarizeResponse(summary=summary)


__all__ = ["get_audio_service", "router"]
