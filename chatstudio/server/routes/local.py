"""Local model server endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from chatstudio.core import local_models
from chatstudio.core.chat import ChatService
from chatstudio.models.provider import ProviderDescriptor
from chatstudio.models.request import GenerationRequest
from chatstudio.server.dependencies import get_chat_service
from chatstudio.server.models import LocalBody

router = APIRouter(tags=["local"])


@router.get("/local/endpoints")
async def known_endpoints() -> dict[str, str]:
    """Default addresses of common local model servers."""
    return dict(local_models.KNOWN_LOCAL_ENDPOINTS)


@router.post("/local")
def local_action(body: LocalBody, service: ChatService = Depends(get_chat_service)):
    """
    Talk to a local model server.

    Accepts { action: "listModels" | "testConnection" | "generate", modelConfig, prompt?, options? }
    """
    if not body.action:
        raise HTTPException(status_code=400, detail="Action is required")
    if body.descriptor is None:
        raise HTTPException(status_code=400, detail="Model config is required")

    entry = {"source": "local", **body.descriptor}
    try:
        descriptor = ProviderDescriptor.model_validate(entry)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid model config: {e.error_count()} error(s)")

    if body.action == "listModels":
        return {"models": local_models.list_models(descriptor)}
    if body.action == "testConnection":
        return local_models.check_connection(descriptor)
    if body.action == "generate":
        request = GenerationRequest(
            prompt=body.prompt or "",
            provider_id=descriptor.id,
            model_hint=body.options.get("model"),
            temperature=body.options.get("temperature"),
            max_tokens=body.options.get("max_tokens"),
        )
        return service.generate(request, [entry])

    raise HTTPException(status_code=400, detail="Invalid action")
