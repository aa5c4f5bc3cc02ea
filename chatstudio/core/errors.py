"""
Error taxonomy for generation and memory.

``InvalidRequestError`` and ``MissingCredentialError`` are raised before any
side effect. ``ProviderUnresolvedError`` is recovered by the router.
``GenerationFailedError`` (and its two subclasses) is what callers see when
an upstream call fails. ``MemoryDegradedError`` never leaves the memory layer.
"""

from __future__ import annotations

# Upstream bodies can be whole HTML error pages
_MAX_BODY_IN_MESSAGE = 500


def _clip(text: str, limit: int = _MAX_BODY_IN_MESSAGE) -> str:
    if len(text) > limit:
        return text[:limit] + "..."
    return text


class ChatStudioError(Exception):
    """Base class for all chatstudio errors."""


class InvalidRequestError(ChatStudioError):
    """The request is malformed (e.g. empty prompt)."""


class MissingCredentialError(ChatStudioError):
    """The resolved provider needs a key and none is available."""

    def __init__(self, provider_id: str, credential_env: str | None = None):
        self.provider_id = provider_id
        self.credential_env = credential_env
        hint = f" Set {credential_env} or pass an API key." if credential_env else " Pass an API key."
        super().__init__(f"Provider '{provider_id}' requires an API key.{hint}")


class ProviderUnresolvedError(ChatStudioError):
    """No usable provider matches the requested id."""

    def __init__(self, provider_id: str, reason: str = "not found"):
        self.provider_id = provider_id
        self.reason = reason
        super().__init__(f"Provider '{provider_id}' {reason}")


class GenerationFailedError(ChatStudioError):
    """An upstream generation call failed."""

    status_code: int | None = None

    def __init__(self, message: str, provider_id: str, detail: str = ""):
        self.provider_id = provider_id
        self.detail = detail
        super().__init__(message)


class ProviderError(GenerationFailedError):
    """Upstream answered with a non-success HTTP status."""

    def __init__(self, provider_id: str, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"API error: {status_code} - {_clip(body)}",
            provider_id=provider_id,
            detail=body,
        )


class TransportError(GenerationFailedError):
    """Upstream could not be reached (connection failure or timeout)."""

    def __init__(self, provider_id: str, detail: str, original: Exception | None = None):
        self.original = original
        super().__init__(
            f"API error: Network - {_clip(detail)}",
            provider_id=provider_id,
            detail=detail,
        )


class MemoryDegradedError(ChatStudioError):
    """The session store could not read or write."""

    def __init__(self, message: str, original: Exception | None = None):
        self.original = original
        super().__init__(message)
