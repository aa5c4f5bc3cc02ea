"""Core module for chatstudio."""

from chatstudio.core.chat import ChatService
from chatstudio.core.config import ChatSettings, ConfigManager, load_config, load_settings
from chatstudio.core.errors import (
    ChatStudioError,
    GenerationFailedError,
    InvalidRequestError,
    MemoryDegradedError,
    MissingCredentialError,
    ProviderError,
    ProviderUnresolvedError,
    TransportError,
)
from chatstudio.core.memory import MemoryManager
from chatstudio.core.registry import BUILTIN_PROVIDERS, ProviderRegistry
from chatstudio.core.router import DispatchPlan, RequestRouter
from chatstudio.core.session_store import InMemorySessionStore, JsonlSessionStore, SessionStore

__all__ = [
    "BUILTIN_PROVIDERS",
    "ChatService",
    "ChatSettings",
    "ChatStudioError",
    "ConfigManager",
    "DispatchPlan",
    "GenerationFailedError",
    "InMemorySessionStore",
    "InvalidRequestError",
    "JsonlSessionStore",
    "MemoryDegradedError",
    "MemoryManager",
    "MissingCredentialError",
    "ProviderError",
    "ProviderRegistry",
    "ProviderUnresolvedError",
    "RequestRouter",
    "SessionStore",
    "TransportError",
    "load_config",
    "load_settings",
]
