"""
Wire dialects: how to talk to each family of upstream APIs.

Each dialect pairs a request builder with a response extractor. The table
is built once at import time and looked up by ``ProviderDescriptor.dialect``;
adding a provider family means adding one ``DialectSpec``.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from chatstudio import __version__
from chatstudio.models.provider import ProviderDescriptor

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
ANTHROPIC_VERSION = "2023-06-01"
USER_AGENT = f"chatstudio/{__version__}"


@dataclass(frozen=True)
class CallParams:
    """Provider-independent parameters of one upstream call."""

    prompt: str
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    seed: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)
    credential: str | None = None
    width: int = 1024
    height: int = 1024
    steps: int | None = None
    guidance_scale: float | None = None
    enhance: bool = False
    private: bool = False
    safety_checker: bool = True


@dataclass(frozen=True)
class WireRequest:
    """A fully built HTTP request, ready for httpx."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    json: dict[str, Any] | None = None
    params: dict[str, str] | None = None


Builder = Callable[[ProviderDescriptor, CallParams], WireRequest]
Extractor = Callable[[Any], str | None]


@dataclass(frozen=True)
class DialectSpec:
    """Request builder and response extractor for one wire format."""

    name: str
    default_model: str
    build_text: Builder
    extract_text: Extractor
    build_image: Builder | None = None
    extract_image: Extractor | None = None
    default_image_model: str | None = None
    model_aliases: Mapping[str, str] = field(default_factory=dict)

    def resolve_model(self, hint: str | None, descriptor: ProviderDescriptor, kind: str = "text") -> str:
        """Pick the model: explicit hint (mapped through aliases), then provider, then dialect default."""
        if hint:
            return self.model_aliases.get(hint, hint)
        if kind == "image":
            return self.default_image_model or self.default_model
        return descriptor.default_model or self.default_model


# ── Helpers ──────────────────────────────────────────────────────────────


def _join(endpoint: str, suffix: str, already: str | None = None) -> str:
    """Append a path suffix unless the endpoint already points at it."""
    base = endpoint.rstrip("/")
    if base.endswith(already or suffix):
        return base
    return base + suffix


def _dig(payload: Any, *path: str | int) -> Any:
    """Walk nested dicts/lists; None if any step is missing."""
    current = payload
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict) or step not in current:
                return None
            current = current[step]
    return current


def _as_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _first(payload: Any, *paths: tuple[str | int, ...]) -> str | None:
    for path in paths:
        text = _as_text(_dig(payload, *path))
        if text is not None:
            return text
    return None


def _headers(descriptor: ProviderDescriptor, auth: dict[str, str]) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
    headers.update(auth)
    headers.update(descriptor.headers)
    return headers


def _bearer(credential: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}"} if credential else {}


def _chat_body(params: CallParams) -> dict[str, Any]:
    return {
        "model": params.model,
        "messages": [{"role": "user", "content": params.prompt}],
        "temperature": params.temperature if params.temperature is not None else DEFAULT_TEMPERATURE,
        "max_tokens": params.max_tokens if params.max_tokens is not None else DEFAULT_MAX_TOKENS,
    }


def _flat_body(params: CallParams) -> dict[str, Any]:
    body: dict[str, Any] = {"prompt": params.prompt, "model": params.model}
    if params.temperature is not None:
        body["temperature"] = params.temperature
    if params.max_tokens is not None:
        body["max_tokens"] = params.max_tokens
    if params.seed is not None:
        body["seed"] = params.seed
    body.update(params.options)
    body["prompt"] = params.prompt
    return body


def api_root(endpoint: str) -> str:
    """Strip a known chat path to get the API root (for sibling endpoints)."""
    base = endpoint.rstrip("/")
    for tail in ("/v1/chat/completions", "/chat/completions", "/v1/messages"):
        if base.endswith(tail):
            return base[: -len(tail)]
    return base


# ── Builders ─────────────────────────────────────────────────────────────


def _build_openai_chat(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    return WireRequest(
        method="POST",
        url=_join(descriptor.endpoint_url, "/v1/chat/completions", already="/chat/completions"),
        headers=_headers(descriptor, _bearer(params.credential)),
        json=_chat_body(params),
    )


def _build_anthropic(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    auth = {"anthropic-version": ANTHROPIC_VERSION}
    if params.credential:
        auth["x-api-key"] = params.credential
    return WireRequest(
        method="POST",
        url=_join(descriptor.endpoint_url, "/v1/messages"),
        headers=_headers(descriptor, auth),
        json=_chat_body(params),
    )


def _build_ollama(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    options: dict[str, Any] = {
        "temperature": params.temperature if params.temperature is not None else DEFAULT_TEMPERATURE,
        "num_predict": params.max_tokens if params.max_tokens is not None else DEFAULT_MAX_TOKENS,
    }
    if params.seed is not None:
        options["seed"] = int(params.seed) if params.seed.isdigit() else params.seed
    options.update(params.options)
    return WireRequest(
        method="POST",
        url=_join(descriptor.endpoint_url, "/api/generate"),
        headers=_headers(descriptor, _bearer(params.credential)),
        json={"model": params.model, "prompt": params.prompt, "stream": False, "options": options},
    )


def _build_raw_prompt(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    return WireRequest(
        method="POST",
        url=_join(descriptor.endpoint_url, "/api/v1/generate"),
        headers=_headers(descriptor, _bearer(params.credential)),
        json=_flat_body(params),
    )


def _build_custom_json(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    return WireRequest(
        method="POST",
        url=descriptor.endpoint_url,
        headers=_headers(descriptor, _bearer(params.credential)),
        json=_flat_body(params),
    )


def _build_pollinations(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    query: dict[str, str] = {}
    if params.model and params.model.lower() != "openai":
        query["model"] = params.model.lower()
    if params.seed is not None:
        query["seed"] = params.seed
    if params.temperature is not None:
        query["temperature"] = str(params.temperature)
    if params.max_tokens is not None:
        query["max_tokens"] = str(params.max_tokens)
    return WireRequest(
        method="GET",
        url=f"{descriptor.endpoint_url.rstrip('/')}/{quote(params.prompt, safe='')}",
        headers={"User-Agent": USER_AGENT, **descriptor.headers},
        params=query or None,
    )


def _build_pollinations_image(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    endpoint = descriptor.image_endpoint_url or descriptor.endpoint_url
    query: dict[str, str] = {"width": str(params.width), "height": str(params.height), "nologo": "true"}
    if params.model and params.model.lower() != "flux":
        query["model"] = params.model.lower()
    if params.seed is not None:
        query["seed"] = params.seed
    if params.steps:
        query["steps"] = str(params.steps)
    if params.guidance_scale:
        query["guidance_scale"] = f"{params.guidance_scale:g}"
    if params.private:
        query["private"] = "true"
    if params.enhance:
        query["enhance"] = "true"
    if not params.safety_checker:
        query["safety_checker"] = "false"
    return WireRequest(
        method="GET",
        url=f"{endpoint.rstrip('/')}/{quote(params.prompt, safe='')}",
        headers={"User-Agent": USER_AGENT, **descriptor.headers},
        params=query,
    )


def _build_openai_image(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    url = descriptor.image_endpoint_url or f"{api_root(descriptor.endpoint_url)}/v1/images/generations"
    return WireRequest(
        method="POST",
        url=url,
        headers=_headers(descriptor, _bearer(params.credential)),
        json={
            "model": params.model,
            "prompt": params.prompt,
            "n": 1,
            "size": f"{params.width}x{params.height}",
            "quality": "standard",
        },
    )


def _build_ollama_image(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    return WireRequest(
        method="POST",
        url=_join(descriptor.image_endpoint_url or descriptor.endpoint_url, "/api/generate"),
        headers=_headers(descriptor, _bearer(params.credential)),
        json={
            "model": params.model,
            "prompt": params.prompt,
            "options": {"width": params.width, "height": params.height},
        },
    )


def _build_json_image(descriptor: ProviderDescriptor, params: CallParams) -> WireRequest:
    body: dict[str, Any] = {
        "prompt": params.prompt,
        "model": params.model,
        "width": params.width,
        "height": params.height,
    }
    if params.seed is not None:
        body["seed"] = params.seed
    return WireRequest(
        method="POST",
        url=descriptor.image_endpoint_url or descriptor.endpoint_url,
        headers=_headers(descriptor, _bearer(params.credential)),
        json=body,
    )


# ── Extractors ───────────────────────────────────────────────────────────


def _extract_chat_completion(payload: Any) -> str | None:
    return _first(payload, ("choices", 0, "message", "content"))


def _extract_anthropic(payload: Any) -> str | None:
    return _first(payload, ("content", 0, "text"))


def _extract_ollama(payload: Any) -> str | None:
    return _first(payload, ("response",), ("text",))


def _extract_generic(payload: Any) -> str | None:
    return _first(
        payload,
        ("choices", 0, "message", "content"),
        ("content",),
        ("response",),
    )


def _extract_pollinations(payload: Any) -> str | None:
    if isinstance(payload, str):
        return payload
    return _extract_generic(payload)


def _as_image_ref(value: Any) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    if value.startswith(("http://", "https://", "data:")):
        return value
    # Bare base64 (Stable Diffusion WebUI and friends)
    return f"data:image/png;base64,{value}"


def _extract_image_generic(payload: Any) -> str | None:
    for path in (
        ("data", 0, "url"),
        ("imageUrl",),
        ("image_url",),
        ("url",),
        ("images", 0, "url"),
        ("images", 0),
        ("image",),
    ):
        ref = _as_image_ref(_dig(payload, *path))
        if ref:
            return ref
    b64 = _dig(payload, "data", 0, "b64_json")
    if isinstance(b64, str) and b64:
        return f"data:image/png;base64,{b64}"
    return None


# ── Table ────────────────────────────────────────────────────────────────

_GPT_NAMES = ("gpt-3.5-turbo", "gpt-4", "OpenAI", "openai")

DIALECTS: Mapping[str, DialectSpec] = {
    "openai-chat": DialectSpec(
        name="openai-chat",
        default_model="gpt-3.5-turbo",
        build_text=_build_openai_chat,
        extract_text=_extract_chat_completion,
        build_image=_build_openai_image,
        extract_image=_extract_image_generic,
        default_image_model="dall-e-3",
    ),
    "anthropic-messages": DialectSpec(
        name="anthropic-messages",
        default_model="claude-3-haiku-20240307",
        build_text=_build_anthropic,
        extract_text=_extract_anthropic,
        model_aliases={
            **{name: "claude-3-haiku-20240307" for name in _GPT_NAMES},
            "mistral-tiny": "claude-3-sonnet-20240229",
            "mistral-small": "claude-3-sonnet-20240229",
        },
    ),
    "mistral-chat": DialectSpec(
        name="mistral-chat",
        default_model="mistral-tiny",
        build_text=_build_openai_chat,
        extract_text=_extract_chat_completion,
        model_aliases={
            **{name: "mistral-tiny" for name in _GPT_NAMES},
            "claude-3-sonnet": "mistral-small",
            "claude-3-haiku": "mistral-small",
        },
    ),
    "ollama-generate": DialectSpec(
        name="ollama-generate",
        default_model="llama2",
        build_text=_build_ollama,
        extract_text=_extract_ollama,
        build_image=_build_ollama_image,
        extract_image=_extract_image_generic,
        default_image_model="stablediffusion",
    ),
    "raw-prompt": DialectSpec(
        name="raw-prompt",
        default_model="default",
        build_text=_build_raw_prompt,
        extract_text=_extract_generic,
        build_image=_build_json_image,
        extract_image=_extract_image_generic,
    ),
    "custom-json": DialectSpec(
        name="custom-json",
        default_model="default",
        build_text=_build_custom_json,
        extract_text=_extract_generic,
        build_image=_build_json_image,
        extract_image=_extract_image_generic,
    ),
    "pollinations": DialectSpec(
        name="pollinations",
        default_model="openai",
        build_text=_build_pollinations,
        extract_text=_extract_pollinations,
        build_image=_build_pollinations_image,
        extract_image=_extract_image_generic,
        default_image_model="flux",
    ),
}


def get_dialect(name: str) -> DialectSpec:
    """Look up a dialect, raising KeyError for unknown names."""
    return DIALECTS[name]
