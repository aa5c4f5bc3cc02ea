"""
Tests for session stores and persistence.
"""

import threading

import pytest

from chatstudio.core.errors import MemoryDegradedError
from chatstudio.core.session_store import InMemorySessionStore, JsonlSessionStore


@pytest.fixture(params=["memory", "jsonl"])
def any_store(request, temp_dir):
    if request.param == "memory":
        return InMemorySessionStore()
    return JsonlSessionStore(temp_dir / "sessions")


class TestStoreContract:
    """Behavior shared by every store."""

    @pytest.mark.parametrize("n", [0, 1, 2, 7])
    def test_ordering(self, any_store, n):
        """Turns come back exactly in the order they were appended."""
        contents = [f"turn {i}" for i in range(n)]
        for i, content in enumerate(contents):
            any_store.append("s1", "user" if i % 2 == 0 else "assistant", content)

        turns = any_store.query("s1")
        assert [t.content for t in turns] == contents
        assert [t.role for t in turns] == ["user" if i % 2 == 0 else "assistant" for i in range(n)]

    def test_created_at_non_decreasing(self, any_store):
        for i in range(20):
            any_store.append("s1", "user", str(i))
        stamps = [t.created_at for t in any_store.query("s1")]
        assert stamps == sorted(stamps)

    def test_limit_oldest_and_newest(self, any_store):
        for i in range(5):
            any_store.append("s1", "user", str(i))
        assert [t.content for t in any_store.query("s1", limit=2)] == ["0", "1"]
        assert [t.content for t in any_store.query("s1", limit=2, newest=True)] == ["3", "4"]
        assert any_store.query("s1", limit=0) == []

    def test_unknown_session_is_empty(self, any_store):
        assert any_store.query("never_written") == []

    def test_delete_returns_count(self, any_store):
        any_store.append("s1", "user", "a")
        any_store.append("s1", "assistant", "b")
        assert any_store.delete("s1") == 2
        assert any_store.query("s1") == []

    def test_delete_twice(self, any_store):
        """Clearing an empty session is a no-op."""
        any_store.append("s1", "user", "a")
        any_store.delete("s1")
        assert any_store.delete("s1") == 0
        assert any_store.query("s1") == []

    def test_sessions_are_isolated(self, any_store):
        any_store.append("s1", "user", "one")
        any_store.append("s2", "user", "two")
        any_store.delete("s1")
        assert [t.content for t in any_store.query("s2")] == ["two"]
        assert any_store.list_sessions() == ["s2"]

    def test_concurrent_appends(self, any_store):
        """Appends from many threads to one session are all kept."""

        def writer(tag):
            for i in range(10):
                any_store.append("shared", "user", f"{tag}-{i}")

        threads = [threading.Thread(target=writer, args=(t,)) for t in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        turns = any_store.query("shared")
        assert len(turns) == 80
        for tag in range(8):
            mine = [t.content for t in turns if t.content.startswith(f"{tag}-")]
            assert mine == [f"{tag}-{i}" for i in range(10)]

    def test_lock_per_session(self, any_store):
        """Holding one session's lock does not block another session."""
        done = threading.Event()

        def writer():
            any_store.append("b", "user", "x")
            done.set()

        with any_store.session_lock("a"):
            thread = threading.Thread(target=writer)
            thread.start()
            assert done.wait(timeout=5)
        thread.join()

    def test_lock_table_released(self, any_store):
        """Lock entries do not outlive the operations that use them."""
        for i in range(50):
            any_store.append(f"s{i}", "user", "x")
            any_store.query(f"s{i}")
        any_store.delete("s0")
        assert any_store._slots == {}


class TestJsonlSessionStore:
    """File-specific behavior."""

    def test_one_line_per_turn(self, temp_dir):
        store = JsonlSessionStore(temp_dir)
        store.append("s1", "user", "hello")
        store.append("s1", "assistant", "hi")
        lines = (temp_dir / "s1.jsonl").read_text().splitlines()
        assert len(lines) == 2
        assert '"role":"user"' in lines[0]

    def test_survives_reopen(self, temp_dir):
        JsonlSessionStore(temp_dir).append("s1", "user", "persisted")
        reopened = JsonlSessionStore(temp_dir)
        assert [t.content for t in reopened.query("s1")] == ["persisted"]

    def test_reopen_keeps_timestamps_ordered(self, temp_dir):
        first = JsonlSessionStore(temp_dir)
        first.append("s1", "user", "a")
        second = JsonlSessionStore(temp_dir)
        second.append("s1", "assistant", "b")
        turns = second.query("s1")
        assert turns[0].created_at <= turns[1].created_at

    def test_invalid_session_id(self, temp_dir):
        store = JsonlSessionStore(temp_dir)
        with pytest.raises(MemoryDegradedError):
            store.append("../escape", "user", "x")
        with pytest.raises(MemoryDegradedError):
            store.query("a/b")

    def test_corrupt_file(self, temp_dir):
        (temp_dir / "bad.jsonl").write_text("{not json\n")
        store = JsonlSessionStore(temp_dir)
        with pytest.raises(MemoryDegradedError):
            store.query("bad")
        # A corrupt session can still be cleared
        assert store.delete("bad") == 1
        assert not (temp_dir / "bad.jsonl").exists()

    def test_unwritable_directory(self, temp_dir):
        blocker = temp_dir / "file"
        blocker.write_text("")
        store = JsonlSessionStore(blocker / "sessions")
        with pytest.raises(MemoryDegradedError):
            store.append("s1", "user", "x")

    def test_list_sessions_missing_dir(self, temp_dir):
        assert JsonlSessionStore(temp_dir / "nope").list_sessions() == []

    @pytest.mark.parametrize(
        "payload",
        [b"[1, 2]\n", b"5\n", b'"x"\n', b"\xff\xfe garbage\n"],
        ids=["list", "number", "string", "bad-utf8"],
    )
    def test_malformed_lines(self, temp_dir, payload):
        """Lines that are not turn objects surface as a degraded store."""
        (temp_dir / "s1.jsonl").write_bytes(payload)
        store = JsonlSessionStore(temp_dir)
        with pytest.raises(MemoryDegradedError):
            store.query("s1")
        with pytest.raises(MemoryDegradedError):
            store.append("s1", "user", "x")
        assert store.delete("s1") == 1
        assert store.query("s1") == []
