"""Conversation memory endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from chatstudio.core.chat import ChatService
from chatstudio.server.dependencies import get_chat_service
from chatstudio.server.models import MemoryActionResult, MemoryBody, MemoryInfo, TurnInfo

router = APIRouter(tags=["memory"])


def _cleared(service: ChatService, session_id: str | None) -> MemoryActionResult:
    sid = service.clear_history(session_id)
    return MemoryActionResult(message="Memory cleared successfully", session_id=sid)


@router.get("/memory")
def get_memory(
    session_id: str | None = Query(default=None, alias="sessionId"),
    action: str | None = None,
    service: ChatService = Depends(get_chat_service),
) -> MemoryInfo | MemoryActionResult:
    """Full history of a session, or clear it with ``action=clear``."""
    if action == "clear":
        return _cleared(service, session_id)

    history = service.get_history(session_id)
    return MemoryInfo(
        memory=[TurnInfo(role=t.role, content=t.content, timestamp=t.created_at) for t in history.turns],
        session_id=history.session_id,
        message_count=history.count,
    )


@router.post("/memory")
def post_memory(body: MemoryBody, service: ChatService = Depends(get_chat_service)) -> MemoryActionResult:
    """Save a turn (``action=save``) or clear a session (``action=clear``)."""
    if body.action == "save" and body.message:
        sid = service.save_turn(body.session_id, body.message.role, body.message.content)
        return MemoryActionResult(message="Message saved to memory", session_id=sid)

    if body.action == "clear":
        return _cleared(service, body.session_id)

    raise HTTPException(status_code=400, detail="Invalid action or missing parameters")


@router.delete("/memory/{session_id}")
def delete_memory(session_id: str, service: ChatService = Depends(get_chat_service)) -> MemoryActionResult:
    """Delete a session."""
    return _cleared(service, session_id)
