"""Provider listing endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chatstudio.core.chat import ChatService
from chatstudio.server.dependencies import get_chat_service
from chatstudio.server.models import ProviderInfo

router = APIRouter(tags=["providers"])


@router.get("/providers")
def list_providers(
    capability: str | None = None,
    service: ChatService = Depends(get_chat_service),
) -> list[ProviderInfo]:
    """List built-in providers, optionally only those for ``capability``."""
    return [
        ProviderInfo(
            id=p.id,
            name=p.name,
            capability=p.capability,
            dialect=p.dialect,
            endpoint=p.endpoint_url,
            source=p.source,
            enabled=p.enabled,
            description=p.description,
            requires_credential=p.requires_credential,
        )
        for p in service.list_providers(capability)
    ]
