"""
Session models for persistent conversation history.
"""

import secrets
import string
import time
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

Role = Literal["user", "assistant"]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


def new_session_id() -> str:
    """Mint a session id from the current time plus a random base36 suffix."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class Turn(BaseModel):
    """A single immutable message in a session."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    role: Role
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


class SessionHistory(BaseModel):
    """Full ordered history of a session."""

    session_id: str
    turns: list[Turn] = Field(default_factory=list)

    @computed_field
    @property
    def count(self) -> int:
        return len(self.turns)
