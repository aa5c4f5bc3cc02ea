"""Pydantic models for the API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field

from chatstudio.models.request import Attachment, GenerationRequest, ImageRequest


class GenerateBody(BaseModel):
    """POST /api/generate request body."""

    prompt: str = ""
    session_id: str | None = Field(default=None, alias="sessionId")
    provider_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("providerId", "selectedApi", "provider_id"),
    )
    model: str | None = None
    seed: str | int | None = None
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, alias="maxTokens")
    files: list[Attachment] = Field(default_factory=list)
    custom_apis: list[dict[str, Any]] = Field(default_factory=list, alias="customApis")
    local_models: list[dict[str, Any]] = Field(default_factory=list, alias="localModels")
    api_key: str | None = Field(default=None, alias="apiKey")
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    def catalog(self) -> list[dict[str, Any]]:
        local = [{"source": "local", **entry} for entry in self.local_models]
        return [*self.custom_apis, *local]

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(
            prompt=self.prompt,
            provider_id=self.provider_id,
            model_hint=self.model,
            seed=self.seed,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            session_id=self.session_id,
            attachments=self.files,
            credential=self.api_key,
            options=self.options,
        )


class ImageBody(BaseModel):
    """POST /api/generate/image request body."""

    prompt: str = ""
    provider_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("providerId", "selectedApi", "provider_id"),
    )
    model: str | None = None
    seed: str | int | None = None
    width: int = 1024
    height: int = 1024
    negative_prompt: str | None = Field(default=None, alias="negativePrompt")
    steps: int | None = 20
    guidance_scale: float | None = Field(default=7.5, alias="guidanceScale")
    enhance: bool = False
    private: bool = False
    safety_checker: bool = Field(default=True, alias="safetyChecker")
    custom_apis: list[dict[str, Any]] = Field(default_factory=list, alias="customApis")
    local_models: list[dict[str, Any]] = Field(default_factory=list, alias="localModels")
    api_key: str | None = Field(default=None, alias="apiKey")

    model_config = {"populate_by_name": True}

    def catalog(self) -> list[dict[str, Any]]:
        local = [{"source": "local", **entry} for entry in self.local_models]
        return [*self.custom_apis, *local]

    def to_request(self) -> ImageRequest:
        return ImageRequest(
            prompt=self.prompt,
            provider_id=self.provider_id,
            model_hint=self.model,
            seed=self.seed,
            width=self.width,
            height=self.height,
            negative_prompt=self.negative_prompt,
            steps=self.steps,
            guidance_scale=self.guidance_scale,
            enhance=self.enhance,
            private=self.private,
            safety_checker=self.safety_checker,
            credential=self.api_key,
        )


class MemoryMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class MemoryBody(BaseModel):
    """POST /api/memory request body."""

    action: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    message: MemoryMessage | None = None

    model_config = {"populate_by_name": True}


class MemoryActionResult(BaseModel):
    success: bool = True
    message: str
    session_id: str = Field(alias="sessionId")

    model_config = {"populate_by_name": True}


class TurnInfo(BaseModel):
    """A stored turn."""

    role: str
    content: str
    timestamp: datetime


class MemoryInfo(BaseModel):
    """GET /api/memory response."""

    memory: list[TurnInfo]
    session_id: str = Field(alias="sessionId")
    message_count: int = Field(alias="messageCount")

    model_config = {"populate_by_name": True}


class ProviderInfo(BaseModel):
    """Provider summary for list responses. Never carries a key."""

    id: str
    name: str
    capability: str
    dialect: str
    endpoint: str
    source: str
    enabled: bool
    description: str = ""
    requires_credential: bool


class LocalBody(BaseModel):
    """POST /api/local request body."""

    action: str | None = None
    descriptor: dict[str, Any] | None = Field(default=None, alias="modelConfig")
    prompt: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}
