"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from chatstudio.core.chat import ChatService
from chatstudio.core.config import ChatSettings, load_settings
from chatstudio.core.errors import (
    GenerationFailedError,
    InvalidRequestError,
    MissingCredentialError,
)
from chatstudio.server.routes import register_routes

logger = logging.getLogger(__name__)


def create_app(
    service: ChatService | None = None,
    settings: ChatSettings | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        service: Chat service to serve (default: one built from settings)
        settings: Settings used when no service is given (default: settings.yaml)
        cors_origins: Allowed origins (default: any)
    """
    if service is None:
        settings = settings or load_settings()
        service = ChatService.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.chat_service.close()

    app = FastAPI(
        title="chatstudio",
        description="Multi-provider chat and image generation with conversation memory",
        lifespan=lifespan,
    )
    app.state.chat_service = service

    # CORS
    origins = cors_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ValidationError)
    async def invalid_fields(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {exc.error_count()} error(s)"})

    @app.exception_handler(MissingCredentialError)
    async def missing_credential(request: Request, exc: MissingCredentialError):
        return JSONResponse(
            status_code=400,
            content={"error": str(exc), "provider_id": exc.provider_id},
        )

    @app.exception_handler(GenerationFailedError)
    async def generation_failed(request: Request, exc: GenerationFailedError):
        logger.error("Generation failed on %s: %s", exc.provider_id, exc)
        return JSONResponse(
            status_code=502,
            content={
                "error": str(exc),
                "provider_id": exc.provider_id,
                "status_code": exc.status_code,
            },
        )

    register_routes(app)
    return app
