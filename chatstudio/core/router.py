"""
Request routing: pick a provider, build its wire request, send it.

Routing never fails because a provider id is unknown; it falls back to the
default provider and marks the plan as degraded. It does fail, before any
network traffic, when the chosen provider needs a key that nobody supplied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from typing import Literal

import httpx

from chatstudio.core.config import get_config_manager
from chatstudio.core.dialects import CallParams, DialectSpec, WireRequest, get_dialect
from chatstudio.core.errors import (
    InvalidRequestError,
    MissingCredentialError,
    ProviderUnresolvedError,
    TransportError,
)
from chatstudio.core.normalizer import normalize_response
from chatstudio.core.registry import CatalogEntry, ProviderRegistry
from chatstudio.models.provider import ProviderDescriptor
from chatstudio.models.request import CanonicalResult, GenerationRequest, ImageRequest

logger = logging.getLogger(__name__)

Kind = Literal["text", "image"]

CONSISTENCY_INSTRUCTION = (
    "Please respond to the current message while being aware of the previous "
    "conversation context. If the user references something from earlier in the "
    "conversation, acknowledge it and continue naturally. Maintain consistency "
    "with previous responses."
)

FORMAT_INSTRUCTION = """Please format your response with proper structure:
- Use code blocks with language specification (e.g., ```javascript, ```python)
- Use numbered or bulleted lists for clarity
- Use proper headings and formatting
- Include JSON data in formatted code blocks
- Make code snippets copyable and well-formatted"""


def augment_prompt(prompt: str, context: str) -> str:
    """Prepend formatted prior turns and the consistency instruction."""
    if not context:
        return prompt
    return f"{context}Current user message: {prompt}\n\n{CONSISTENCY_INSTRUCTION}"


def _env_key_lookup(name: str) -> str | None:
    return get_config_manager().get(name)


@dataclass(frozen=True)
class DispatchPlan:
    """Everything needed to make (and if necessary redo) one upstream call."""

    provider: ProviderDescriptor
    wire: WireRequest
    params: CallParams
    kind: Kind = "text"
    requested_id: str | None = None
    degraded: bool = False

    @property
    def prompt(self) -> str:
        return self.params.prompt

    @property
    def model(self) -> str:
        return self.params.model

    @property
    def dialect(self) -> str:
        return self.provider.dialect


class RequestRouter:
    """
    Resolves providers and dispatches requests over HTTP.

    Args:
        registry: Provider catalog (default: built-ins)
        client: httpx client used for every call (default: a new one)
        timeout: Transport timeout in seconds when creating the client
        key_lookup: Process-level key source, called with a descriptor's
            ``credential_env`` (default: environment, then stored config)
        format_instructions: Ask non-default providers for structured markdown
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        client: httpx.Client | None = None,
        timeout: float = 120.0,
        key_lookup: Callable[[str], str | None] | None = None,
        format_instructions: bool = False,
    ):
        self.registry = registry or ProviderRegistry()
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._key_lookup = key_lookup or _env_key_lookup
        self.format_instructions = format_instructions

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=httpx.Timeout(self.timeout), follow_redirects=True)
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    # ── Resolution ────────────────────────────────────────────────────

    def _buildable(self, provider: ProviderDescriptor, kind: Kind) -> bool:
        if not provider.supports(kind):
            return False
        return kind == "text" or get_dialect(provider.dialect).build_image is not None

    def select(
        self,
        provider_id: str | None,
        catalog: Iterable[CatalogEntry] = (),
        kind: Kind = "text",
    ) -> tuple[ProviderDescriptor, bool]:
        """
        Pick the provider for a request.

        Returns:
            (descriptor, degraded) where degraded means the default provider
            stands in for one that could not be used
        """
        default = self.registry.default
        if self.registry.is_default_marker(provider_id):
            return default, False

        try:
            provider = self.registry.resolve(provider_id, catalog)
            if not self._buildable(provider, kind):
                raise ProviderUnresolvedError(provider_id, f"cannot generate {kind}")
            return provider, False
        except ProviderUnresolvedError as e:
            logger.warning("%s; degraded to default provider '%s'", e, default.id)
            return default, True

    def credential_for(self, provider: ProviderDescriptor, override: str | None = None) -> str | None:
        """
        Find the key for a provider.

        Precedence: per-request key, then the descriptor's own key, then the
        process-level key named by ``credential_env``.

        Raises:
            MissingCredentialError: If the provider requires a key and none exists
        """
        credential = override or provider.secret()
        if not credential and provider.credential_env:
            credential = self._key_lookup(provider.credential_env)
        if not credential and provider.requires_credential:
            raise MissingCredentialError(provider.id, provider.credential_env)
        return credential or None

    # ── Planning ──────────────────────────────────────────────────────

    def _plan(
        self,
        provider: ProviderDescriptor,
        params: CallParams,
        kind: Kind,
        requested_id: str | None,
        degraded: bool,
    ) -> DispatchPlan:
        spec: DialectSpec = get_dialect(provider.dialect)
        builder = spec.build_text if kind == "text" else spec.build_image
        wire = builder(provider, params)
        logger.debug("Routing %s request to %s via %s (%s)", kind, provider.id, provider.dialect, wire.url)
        return DispatchPlan(
            provider=provider,
            wire=wire,
            params=params,
            kind=kind,
            requested_id=requested_id,
            degraded=degraded,
        )

    def route(
        self,
        request: GenerationRequest,
        catalog: Iterable[CatalogEntry] = (),
        context: str = "",
    ) -> DispatchPlan:
        """
        Build the dispatch plan for a text request.

        The prompt is augmented with ``context`` exactly once, here; a later
        fallback reuses the augmented prompt from the plan.

        Raises:
            InvalidRequestError: If the prompt is blank
            MissingCredentialError: If the chosen provider lacks a key
        """
        if not request.prompt or not request.prompt.strip():
            raise InvalidRequestError("Prompt is required")

        provider, degraded = self.select(request.provider_id, catalog, "text")
        prompt = augment_prompt(request.prompt, context)
        if self.format_instructions and provider.id != self.registry.default_id:
            prompt = f"{prompt}\n\n{FORMAT_INSTRUCTION}"

        override = request.credential.get_secret_value() if request.credential else None
        credential = self.credential_for(provider, override if not degraded else None)

        spec = get_dialect(provider.dialect)
        hint = None if degraded else request.model_hint
        params = CallParams(
            prompt=prompt,
            model=spec.resolve_model(hint, provider),
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            seed=request.seed,
            options=dict(request.options),
            credential=credential,
        )
        return self._plan(provider, params, "text", request.provider_id, degraded)

    def route_image(
        self,
        request: ImageRequest,
        catalog: Iterable[CatalogEntry] = (),
    ) -> DispatchPlan:
        """Build the dispatch plan for an image request."""
        if not request.prompt or not request.prompt.strip():
            raise InvalidRequestError("Prompt is required")

        provider, degraded = self.select(request.provider_id, catalog, "image")
        prompt = request.prompt
        if request.negative_prompt and request.negative_prompt.strip():
            prompt = f"{prompt}, negative prompt: {request.negative_prompt.strip()}"

        override = request.credential.get_secret_value() if request.credential else None
        credential = self.credential_for(provider, override if not degraded else None)

        spec = get_dialect(provider.dialect)
        params = CallParams(
            prompt=prompt,
            model=spec.resolve_model(None if degraded else request.model_hint, provider, "image"),
            seed=request.seed,
            credential=credential,
            width=request.width,
            height=request.height,
            steps=request.steps,
            guidance_scale=request.guidance_scale,
            enhance=request.enhance,
            private=request.private,
            safety_checker=request.safety_checker,
        )
        return self._plan(provider, params, "image", request.provider_id, degraded)

    def fallback_plan(self, plan: DispatchPlan) -> DispatchPlan:
        """
        Re-target a plan at the default provider.

        The prompt is carried over verbatim, so context is not recomputed.
        """
        default = self.registry.default
        spec = get_dialect(default.dialect)
        params = replace(
            plan.params,
            model=spec.resolve_model(None, default, plan.kind),
            credential=self.credential_for(default),
            options={},
        )
        return self._plan(default, params, plan.kind, plan.requested_id, True)

    # ── Dispatch ──────────────────────────────────────────────────────

    def dispatch(self, plan: DispatchPlan, session_id: str | None = None) -> CanonicalResult:
        """
        Send the planned request once and normalize the reply.

        Raises:
            ProviderError: On a non-success HTTP status
            TransportError: On connection failure or timeout
        """
        wire = plan.wire
        try:
            response = self.client.request(
                wire.method,
                wire.url,
                headers=wire.headers,
                json=wire.json,
                params=wire.params,
            )
        except httpx.TimeoutException as e:
            logger.error("Provider %s timed out: %s", plan.provider.id, e)
            raise TransportError(plan.provider.id, f"timed out ({e})", original=e) from e
        except httpx.RequestError as e:
            logger.error("Could not reach provider %s at %s: %s", plan.provider.id, wire.url, e)
            raise TransportError(plan.provider.id, str(e) or type(e).__name__, original=e) from e

        result = normalize_response(
            response,
            dialect=plan.dialect,
            provider_id=plan.provider.id,
            model=plan.model,
            session_id=session_id,
            kind=plan.kind,
        )
        return result.model_copy(update={"degraded": plan.degraded})
