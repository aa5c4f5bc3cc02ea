"""
Provider descriptor models.

A descriptor tells the router where an upstream generation endpoint lives
and which wire dialect it speaks. Built-in descriptors live in
``chatstudio.core.registry``; custom and local ones arrive with each request.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, model_validator

Capability = Literal["text", "image", "both"]
Dialect = Literal[
    "openai-chat",
    "anthropic-messages",
    "mistral-chat",
    "ollama-generate",
    "raw-prompt",
    "custom-json",
    "pollinations",
]
Source = Literal["builtin", "custom", "local"]

# Dialects whose upstream refuses anonymous calls
CREDENTIALED_DIALECTS: frozenset[str] = frozenset(
    {"openai-chat", "anthropic-messages", "mistral-chat"}
)

# Short format names used by local model settings
_FORMAT_ALIASES = {
    "openai": "openai-chat",
    "anthropic": "anthropic-messages",
    "claude": "anthropic-messages",
    "mistral": "mistral-chat",
    "ollama": "ollama-generate",
    "raw": "raw-prompt",
    "custom": "custom-json",
}


def infer_dialect(endpoint: str) -> str:
    """Guess the dialect of a custom endpoint from its URL."""
    url = endpoint.lower()
    if "anthropic.com" in url or url.rstrip("/").endswith("/v1/messages"):
        return "anthropic-messages"
    if "mistral.ai" in url:
        return "mistral-chat"
    if "openai.com" in url or "/chat/completions" in url:
        return "openai-chat"
    if url.rstrip("/").endswith("/api/generate") or ":11434" in url:
        return "ollama-generate"
    return "custom-json"


class ProviderDescriptor(BaseModel):
    """Metadata describing one upstream endpoint and how to speak to it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., min_length=1)
    display_name: str = Field(default="", validation_alias=AliasChoices("display_name", "name"))
    endpoint_url: str = Field(..., validation_alias=AliasChoices("endpoint_url", "endpoint"))
    capability: Capability = Field(default="text", validation_alias=AliasChoices("capability", "type"))
    dialect: Dialect = Field(default="custom-json", validation_alias=AliasChoices("dialect", "format"))
    credential: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("credential", "apiKey", "api_key")
    )
    enabled: bool = True
    description: str = ""
    default_model: str | None = Field(default=None, validation_alias=AliasChoices("default_model", "model"))
    image_endpoint_url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    credential_env: str | None = None
    requires_credential: bool = False
    source: Source = "custom"

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        fmt = data.get("dialect") or data.get("format")
        if fmt:
            dialect = _FORMAT_ALIASES.get(str(fmt).lower(), fmt)
        else:
            dialect = infer_dialect(data.get("endpoint_url") or data.get("endpoint") or "")
        data.pop("format", None)
        data["dialect"] = dialect

        is_local = data.pop("isLocal", False)
        is_custom = data.pop("isCustom", False)
        if "source" not in data:
            if is_local:
                data["source"] = "local"
            elif is_custom:
                data["source"] = "custom"

        # Local servers speaking a commercial dialect (LM Studio, vLLM) take no key
        if data.get("requires_credential") is None:
            data["requires_credential"] = (
                dialect in CREDENTIALED_DIALECTS and data.get("source") != "local"
            )
        return data

    @property
    def name(self) -> str:
        return self.display_name or self.id

    def supports(self, kind: str) -> bool:
        """Whether this provider can produce the given kind of output."""
        return self.capability == "both" or self.capability == kind

    def secret(self) -> str | None:
        """The descriptor's own credential, if any."""
        if self.credential is None:
            return None
        value = self.credential.get_secret_value()
        return value or None

    def redacted(self) -> ProviderDescriptor:
        """Copy of this descriptor with the credential removed."""
        return self.model_copy(update={"credential": None})
