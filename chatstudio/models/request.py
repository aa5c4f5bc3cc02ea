"""
Generation request and result models.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Attachment(BaseModel):
    """A file attached to a chat message."""

    name: str
    mime_type: str = Field(default="application/octet-stream", alias="type")
    size: int | None = None
    text_content: str | None = Field(default=None, alias="content")

    model_config = {"populate_by_name": True}


class GenerationRequest(BaseModel):
    """One logical text generation request, independent of any provider."""

    prompt: str
    provider_id: str | None = None
    model_hint: str | None = None
    seed: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    session_id: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    credential: SecretStr | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    @field_validator("seed", mode="before")
    @classmethod
    def _seed_as_text(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)


class ImageRequest(BaseModel):
    """One logical image generation request."""

    prompt: str
    provider_id: str | None = None
    model_hint: str | None = None
    seed: str | None = None
    width: int = Field(default=1024, gt=0)
    height: int = Field(default=1024, gt=0)
    negative_prompt: str | None = None
    steps: int | None = Field(default=20, gt=0)
    guidance_scale: float | None = Field(default=7.5, gt=0)
    enhance: bool = False
    private: bool = False
    safety_checker: bool = True
    credential: SecretStr | None = None

    @field_validator("seed", mode="before")
    @classmethod
    def _seed_as_text(cls, value: Any) -> Any:
        if value is None or value == "":
            return None
        return str(value)


class CanonicalResult(BaseModel):
    """Provider-independent result of a generation call."""

    content: str
    kind: Literal["text", "image"] = "text"
    provider_id: str
    model: str
    timestamp: datetime = Field(default_factory=_utcnow)
    session_id: str | None = None
    degraded: bool = False
    memory_context: bool = False
    files_processed: int = 0
    usage: dict[str, Any] = Field(default_factory=dict)
