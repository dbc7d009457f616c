"""Pydantic models for solve requests and structured answers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_STEPS = 8


class SolveRequest(BaseModel):
    """Incoming analysis request; exactly one image source must be given."""

    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    image_base64: Optional[str] = Field(default=None, alias="imageBase64")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    locale: str = "ja"

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="after")
    def _require_single_source(self) -> "SolveRequest":
        has_url = bool(self.image_url)
        has_inline = bool(self.image_base64)
        if not has_url and not has_inline:
            raise ValueError("imageUrl or imageBase64 is required")
        if has_url and has_inline:
            raise ValueError("provide only one of imageUrl or imageBase64")
        return self


class SyncSolveRequest(BaseModel):
    """Request body for the non-streaming solver, which only accepts URLs."""

    image_url: str = Field(alias="imageUrl", min_length=1)
    locale: str = "ja"

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StructuredAnswer(BaseModel):
    """Plain-text answer decoded from one model response."""

    answer: str = ""
    explanation: str = ""
    steps: Optional[List[str]] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")
    prompt_feedback: Optional[Dict[str, Any]] = Field(
        default=None, alias="promptFeedback"
    )
    candidates_count: Optional[int] = Field(default=None, alias="candidatesCount")

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    @field_validator("steps")
    @classmethod
    def _cap_steps(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        kept = [step for step in value if step][:MAX_STEPS]
        return kept or None

    @property
    def is_empty(self) -> bool:
        return not self.answer and not self.explanation

    def to_wire(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the client expects."""

        payload = self.model_dump(by_alias=True, exclude_none=True)
        # finishReason and promptFeedback are part of the contract even when null
        payload.setdefault("finishReason", self.finish_reason)
        payload.setdefault("promptFeedback", self.prompt_feedback)
        return payload


__all__ = ["MAX_STEPS", "SolveRequest", "StructuredAnswer", "SyncSolveRequest"]
