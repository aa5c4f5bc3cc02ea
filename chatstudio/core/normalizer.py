"""
Response normalization: every provider reply becomes a CanonicalResult.

Extraction never raises. When a successful response has an unexpected
shape, the whole payload is serialized and returned as text so that no
reply is silently dropped. Only non-success HTTP statuses become errors.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Literal

import httpx

from chatstudio.core.dialects import get_dialect
from chatstudio.core.errors import ProviderError
from chatstudio.models.request import CanonicalResult

logger = logging.getLogger(__name__)

Kind = Literal["text", "image"]


def _serialize(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload)
    except (TypeError, ValueError):
        return str(payload)


def extract_text(dialect: str, payload: Any) -> str:
    """Pull the reply text out of a provider payload."""
    try:
        text = get_dialect(dialect).extract_text(payload)
    except KeyError:
        logger.warning("Unknown dialect %r, returning raw payload", dialect)
        text = None
    if text is None:
        return _serialize(payload)
    return text


def extract_image(dialect: str, payload: Any) -> str:
    """Pull an image reference (URL or data URL) out of a provider payload."""
    if isinstance(payload, str) and payload.startswith(("data:", "http://", "https://")):
        return payload
    try:
        extractor = get_dialect(dialect).extract_image
    except KeyError:
        extractor = None
    ref = extractor(payload) if extractor else None
    if ref is None:
        return _serialize(payload)
    return ref


def normalize(
    dialect: str,
    payload: Any,
    *,
    provider_id: str = "",
    model: str = "unknown",
    session_id: str | None = None,
    kind: Kind = "text",
) -> CanonicalResult:
    """Map a successful provider payload onto the canonical result shape."""
    if kind == "image":
        content = extract_image(dialect, payload)
    else:
        content = extract_text(dialect, payload)
    usage = payload.get("usage") if isinstance(payload, dict) else None
    return CanonicalResult(
        content=content,
        kind=kind,
        provider_id=provider_id or dialect,
        model=model,
        session_id=session_id,
        usage=usage if isinstance(usage, dict) else {},
    )


def decode_body(response: httpx.Response) -> Any:
    """
    Decode a successful response body.

    JSON bodies are parsed, image bodies become data URLs and anything else
    is returned as text.
    """
    content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()

    if content_type.startswith("image/"):
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"

    if content_type.endswith("json") or content_type.endswith("+json"):
        try:
            return response.json()
        except ValueError:
            return response.text

    return response.text


def normalize_response(
    response: httpx.Response,
    *,
    dialect: str,
    provider_id: str,
    model: str,
    session_id: str | None = None,
    kind: Kind = "text",
) -> CanonicalResult:
    """
    Normalize an HTTP response.

    Raises:
        ProviderError: If the upstream status is not 2xx
    """
    if not response.is_success:
        body = response.text
        logger.error("Provider %s answered %d: %s", provider_id, response.status_code, body[:200])
        raise ProviderError(provider_id, response.status_code, body)

    return normalize(
        dialect,
        decode_body(response),
        provider_id=provider_id,
        model=model,
        session_id=session_id,
        kind=kind,
    )
