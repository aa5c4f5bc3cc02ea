"""FastAPI dependency injection for the chat service."""

from __future__ import annotations

from fastapi import Request

from chatstudio.core.chat import ChatService


def get_chat_service(request: Request) -> ChatService:
    """The service the application was created with."""
    return request.app.state.chat_service
