"""Text and image generation endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from chatstudio.core.chat import ChatService
from chatstudio.models.request import CanonicalResult
from chatstudio.server.dependencies import get_chat_service
from chatstudio.server.models import GenerateBody, ImageBody

router = APIRouter(tags=["generate"])


@router.post("/generate")
def generate(body: GenerateBody, service: ChatService = Depends(get_chat_service)) -> CanonicalResult:
    """
    Generate a reply with conversation memory.

    Accepts { prompt, sessionId?, providerId?, files?, customApis?, localModels?, ... }
    """
    return service.generate(body.to_request(), body.catalog())


@router.post("/generate/image")
def generate_image(body: ImageBody, service: ChatService = Depends(get_chat_service)) -> CanonicalResult:
    """Generate an image. The result content is an image URL or data URL."""
    return service.generate_image(body.to_request(), body.catalog())
