"""Pydantic models for the transcription and summarization functions."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TranscribeRequest(BaseModel):
    """Audio stored at ``audioUrl`` to transcribe."""

    audio_url: str = Field(alias="audioUrl", min_length=1)
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    locale: str = "ja"

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TranscribeResponse(BaseModel):
    transcript: str


class SummarizeRequest(BaseModel):
    """Transcript text to condense into at most ``maxSentences`` sentences."""

    transcript: str = Field(min_length=1)
    locale: str = "ja"
    max_sentences: Optional[int] = Field(default=None, alias="maxSentences")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SummarizeResponse(BaseModel):
    summary: str


__all__ = [
    "SummarizeRequest",
    "SummarizeResponse",
    "TranscribeRequest",
    "TranscribeResponse",
]
