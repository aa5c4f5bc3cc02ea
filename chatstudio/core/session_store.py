"""
Session stores: ordered, append-only turn storage keyed by session id.

The JSONL store keeps one file per session, one turn per line, in insertion
order:

    <sessions_dir>/<session_id>.jsonl

Appends and deletes for one session are serialized by a per-session lock.
Different sessions never share a lock. A lock entry exists only while some
caller holds or waits on it.
"""

from __future__ import annotations

import re
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from chatstudio.core.errors import MemoryDegradedError
from chatstudio.models.session import Role, Turn

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


class _SessionSlot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class SessionStore(ABC):
    """Append/query/delete-by-key storage for turns."""

    def __init__(self) -> None:
        self._slots_guard = threading.Lock()
        self._slots: dict[str, _SessionSlot] = {}

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[None]:
        """Hold the lock that serializes access to one session."""
        with self._slots_guard:
            slot = self._slots.get(session_id)
            if slot is None:
                slot = self._slots[session_id] = _SessionSlot()
            slot.users += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._slots_guard:
                slot.users -= 1
                if slot.users == 0:
                    del self._slots[session_id]

    @staticmethod
    def _stamp(previous: datetime | None) -> datetime:
        """Next created_at for a session; never earlier than the previous turn."""
        now = datetime.now(UTC)
        if previous is not None and now < previous:
            return previous
        return now

    def append(self, session_id: str, role: Role, content: str) -> Turn:
        """Append one turn and return it as stored."""
        with self.session_lock(session_id):
            return self._append_locked(session_id, role, content)

    def delete(self, session_id: str) -> int:
        """Delete every turn of a session. Returns how many were removed."""
        with self.session_lock(session_id):
            return self._delete_locked(session_id)

    @abstractmethod
    def _append_locked(self, session_id: str, role: Role, content: str) -> Turn: ...

    @abstractmethod
    def _delete_locked(self, session_id: str) -> int: ...

    @abstractmethod
    def query(self, session_id: str, limit: int | None = None, newest: bool = False) -> list[Turn]:
        """
        Read turns oldest-first.

        Args:
            session_id: Session to read
            limit: Maximum number of turns, or None for all
            newest: Take the last ``limit`` turns instead of the first
        """

    @abstractmethod
    def list_sessions(self) -> list[str]:
        """Ids of all sessions that have at least one turn."""


def _window(turns: list[Turn], limit: int | None, newest: bool) -> list[Turn]:
    if limit is None:
        return turns
    if limit <= 0:
        return []
    return turns[-limit:] if newest else turns[:limit]


class InMemorySessionStore(SessionStore):
    """Process-local store. Used by tests and throwaway servers."""

    def __init__(self) -> None:
        super().__init__()
        self._turns: dict[str, list[Turn]] = {}

    def _append_locked(self, session_id: str, role: Role, content: str) -> Turn:
        existing = self._turns.setdefault(session_id, [])
        previous = existing[-1].created_at if existing else None
        turn = Turn(
            session_id=session_id,
            role=role,
            content=content,
            created_at=self._stamp(previous),
        )
        existing.append(turn)
        return turn

    def _delete_locked(self, session_id: str) -> int:
        return len(self._turns.pop(session_id, []))

    def query(self, session_id: str, limit: int | None = None, newest: bool = False) -> list[Turn]:
        with self.session_lock(session_id):
            turns = list(self._turns.get(session_id, []))
        return _window(turns, limit, newest)

    def list_sessions(self) -> list[str]:
        return [sid for sid, turns in self._turns.items() if turns]


class JsonlSessionStore(SessionStore):
    """
    File-backed store using one JSONL file per session.

    Directory structure:
        <base_dir>/<session_id>.jsonl
    """

    def __init__(self, base_dir: Path | None = None):
        """
        Initialize the store.

        Args:
            base_dir: Directory for session files (default: ~/.chatstudio/sessions)
        """
        super().__init__()
        if base_dir is None:
            base_dir = Path.home() / ".chatstudio" / "sessions"
        self.base_dir = base_dir

    def _session_path(self, session_id: str) -> Path:
        """Get the path to a session file, rejecting ids unsafe as file names."""
        if not _SESSION_ID_PATTERN.match(session_id):
            raise MemoryDegradedError(f"Invalid session id: {session_id!r}")
        return self.base_dir / f"{session_id}.jsonl"

    def _read(self, path: Path) -> list[Turn]:
        if not path.exists():
            return []
        turns: list[Turn] = []
        try:
            with open(path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    turns.append(Turn.model_validate_json(line))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            raise MemoryDegradedError(f"Cannot read {path}: {e}", original=e) from e
        return turns

    def _last_created_at(self, path: Path) -> datetime | None:
        turns = self._read(path)
        return turns[-1].created_at if turns else None

    def _append_locked(self, session_id: str, role: Role, content: str) -> Turn:
        path = self._session_path(session_id)
        previous = self._last_created_at(path)
        turn = Turn(
            session_id=session_id,
            role=role,
            content=content,
            created_at=self._stamp(previous),
        )
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8") as f:
                f.write(turn.model_dump_json() + "\n")
        except OSError as e:
            raise MemoryDegradedError(f"Cannot write {path}: {e}", original=e) from e
        return turn

    def _delete_locked(self, session_id: str) -> int:
        path = self._session_path(session_id)
        if not path.exists():
            return 0
        try:
            with open(path, "rb") as f:
                removed = sum(1 for line in f if line.strip())
            path.unlink()
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise MemoryDegradedError(f"Cannot delete {path}: {e}", original=e) from e
        return removed

    def query(self, session_id: str, limit: int | None = None, newest: bool = False) -> list[Turn]:
        path = self._session_path(session_id)
        with self.session_lock(session_id):
            turns = self._read(path)
        return _window(turns, limit, newest)

    def list_sessions(self) -> list[str]:
        if not self.base_dir.exists():
            return []
        paths = sorted(self.base_dir.glob("*.jsonl"), key=lambda p: p.stat().st_mtime, reverse=True)
        return [p.stem for p in paths if p.stat().st_size > 0]
