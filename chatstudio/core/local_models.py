"""
Probes for locally hosted model servers.

Lists the models a server offers and checks whether it is reachable.
Neither probe raises on network trouble; failures are reported in the result.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel

from chatstudio.core.dialects import api_root
from chatstudio.models.provider import ProviderDescriptor

logger = logging.getLogger(__name__)

# Where common local servers listen by default
KNOWN_LOCAL_ENDPOINTS = {
    "ollama": "http://localhost:11434",
    "lmstudio": "http://localhost:1234",
    "textgen": "http://localhost:5000",
    "stable_diffusion": "http://localhost:7860",
}

PROBE_TIMEOUT = 10.0


class ConnectionStatus(BaseModel):
    """Outcome of a connection test."""

    connected: bool
    details: str
    endpoint: str
    dialect: str


def _models_url(descriptor: ProviderDescriptor) -> str:
    root = api_root(descriptor.endpoint_url)
    if descriptor.dialect == "ollama-generate":
        if root.endswith("/api/generate"):
            root = root[: -len("/api/generate")]
        return f"{root}/api/tags"
    if descriptor.dialect in ("openai-chat", "mistral-chat"):
        return f"{root}/v1/models"
    return f"{root}/models"


def _probe_url(descriptor: ProviderDescriptor) -> str:
    if descriptor.dialect in ("ollama-generate", "openai-chat", "mistral-chat"):
        return _models_url(descriptor)
    return descriptor.endpoint_url


def _client(client: httpx.Client | None) -> httpx.Client:
    return client or httpx.Client(timeout=PROBE_TIMEOUT)


def list_models(descriptor: ProviderDescriptor, client: httpx.Client | None = None) -> list[Any]:
    """
    Ask a server which models it serves.

    Returns:
        The server's model entries (dicts or names); empty on any failure
    """
    http = _client(client)
    url = _models_url(descriptor)
    try:
        response = http.get(url, headers=descriptor.headers)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        logger.warning("Listing models at %s failed: %s", url, e)
        return []
    except httpx.RequestError as e:
        logger.warning("Could not reach %s: %s", url, e)
        return []
    except ValueError as e:
        logger.warning("Invalid model list from %s: %s", url, e)
        return []
    finally:
        if client is None:
            http.close()

    if descriptor.dialect == "ollama-generate":
        models = data.get("models", []) if isinstance(data, dict) else []
    elif descriptor.dialect in ("openai-chat", "mistral-chat"):
        models = data.get("data", []) if isinstance(data, dict) else []
    elif isinstance(data, dict):
        models = data.get("models", [])
    else:
        models = data
    return models if isinstance(models, list) else []


def check_connection(descriptor: ProviderDescriptor, client: httpx.Client | None = None) -> ConnectionStatus:
    """Check whether a server answers at its probe URL."""
    http = _client(client)
    url = _probe_url(descriptor)
    try:
        response = http.get(url, headers=descriptor.headers)
    except httpx.RequestError as e:
        return ConnectionStatus(
            connected=False,
            details=f"Connection error: {e}",
            endpoint=descriptor.endpoint_url,
            dialect=descriptor.dialect,
        )
    finally:
        if client is None:
            http.close()

    if response.is_success:
        details = (
            f"Connected successfully to {descriptor.dialect} {descriptor.capability} "
            f"model at {descriptor.endpoint_url}"
        )
    else:
        details = f"Connection failed: {response.status_code} {response.reason_phrase}"
    return ConnectionStatus(
        connected=response.is_success,
        details=details,
        endpoint=descriptor.endpoint_url,
        dialect=descriptor.dialect,
    )

