"""
Provider registry: built-in endpoints plus caller-supplied ones.

Built-ins are fixed at import time. Custom and local providers are passed
with every call and never cached, since the user can edit them between
requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from chatstudio.core.errors import ProviderUnresolvedError
from chatstudio.models.provider import ProviderDescriptor

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_ID = "pollinations"

# Ids that always mean "the default provider"
DEFAULT_MARKERS = frozenset({"", "default"})

BUILTIN_PROVIDERS: tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        id=DEFAULT_PROVIDER_ID,
        display_name="Pollinations",
        endpoint_url="https://text.pollinations.ai",
        image_endpoint_url="https://image.pollinations.ai/prompt",
        capability="both",
        dialect="pollinations",
        description="Free AI text and image generation",
        default_model="openai",
        source="builtin",
    ),
    ProviderDescriptor(
        id="openai",
        display_name="OpenAI",
        endpoint_url="https://api.openai.com/v1/chat/completions",
        capability="both",
        dialect="openai-chat",
        description="OpenAI GPT models",
        default_model="gpt-3.5-turbo",
        credential_env="OPENAI_API_KEY",
        source="builtin",
    ),
    ProviderDescriptor(
        id="mistral",
        display_name="Mistral",
        endpoint_url="https://api.mistral.ai/v1/chat/completions",
        capability="text",
        dialect="mistral-chat",
        description="Mistral AI models",
        default_model="mistral-tiny",
        credential_env="MISTRAL_API_KEY",
        source="builtin",
    ),
    ProviderDescriptor(
        id="claude",
        display_name="Claude",
        endpoint_url="https://api.anthropic.com/v1/messages",
        capability="text",
        dialect="anthropic-messages",
        description="Anthropic Claude models",
        default_model="claude-3-haiku-20240307",
        credential_env="ANTHROPIC_API_KEY",
        source="builtin",
    ),
)

CatalogEntry = ProviderDescriptor | Mapping[str, Any]


def coerce_catalog(entries: Iterable[CatalogEntry] | None) -> list[ProviderDescriptor]:
    """
    Turn caller-supplied entries into descriptors.

    Entries that fail validation are skipped with a warning.
    """
    descriptors: list[ProviderDescriptor] = []
    for entry in entries or ():
        if isinstance(entry, ProviderDescriptor):
            descriptors.append(entry)
            continue
        if not isinstance(entry, Mapping):
            logger.warning("Ignoring provider entry that is not a mapping: %r", entry)
            continue
        try:
            descriptors.append(ProviderDescriptor.model_validate(dict(entry)))
        except ValidationError as e:
            logger.warning("Ignoring invalid provider entry %r: %s", entry.get("id"), e)
    return descriptors


class ProviderRegistry:
    """
    Resolves provider ids to descriptors.

    Resolution order: built-ins first, then the caller's catalog, matched by
    exact id. Disabled entries are skipped.
    """

    def __init__(
        self,
        builtins: Iterable[ProviderDescriptor] | None = None,
        default_id: str = DEFAULT_PROVIDER_ID,
    ):
        self._builtins: tuple[ProviderDescriptor, ...] = tuple(
            BUILTIN_PROVIDERS if builtins is None else builtins
        )
        self.default_id = default_id
        if not any(p.id == default_id for p in self._builtins):
            raise ValueError(f"Default provider '{default_id}' is not a built-in")

    @property
    def builtins(self) -> tuple[ProviderDescriptor, ...]:
        return self._builtins

    @property
    def default(self) -> ProviderDescriptor:
        for provider in self._builtins:
            if provider.id == self.default_id:
                return provider
        raise ProviderUnresolvedError(self.default_id)

    def is_default_marker(self, provider_id: str | None) -> bool:
        return provider_id is None or provider_id in DEFAULT_MARKERS or provider_id == self.default_id

    def resolve(
        self,
        provider_id: str,
        catalog: Iterable[CatalogEntry] = (),
    ) -> ProviderDescriptor:
        """
        Find the descriptor for an id.

        Raises:
            ProviderUnresolvedError: If no enabled provider has this id
        """
        disabled = False
        for provider in (*self._builtins, *coerce_catalog(catalog)):
            if provider.id != provider_id:
                continue
            if provider.enabled:
                return provider
            disabled = True
        raise ProviderUnresolvedError(provider_id, "is disabled" if disabled else "not found")

    def list(
        self,
        capability: str | None = None,
        catalog: Iterable[CatalogEntry] = (),
    ) -> list[ProviderDescriptor]:
        """All providers, optionally only those able to produce ``capability``."""
        providers = [*self._builtins, *coerce_catalog(catalog)]
        if capability and capability != "both":
            providers = [p for p in providers if p.supports(capability)]
        elif capability == "both":
            providers = [p for p in providers if p.capability == "both"]
        return providers
