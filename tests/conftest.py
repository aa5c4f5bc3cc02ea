"""
Pytest fixtures for chatstudio tests.
"""

import os
import tempfile
from pathlib import Path

import httpx
import pytest

from chatstudio.core import config as config_module
from chatstudio.core.chat import ChatService
from chatstudio.core.memory import MemoryManager
from chatstudio.core.registry import ProviderRegistry
from chatstudio.core.router import RequestRouter
from chatstudio.core.session_store import InMemorySessionStore


@pytest.fixture(autouse=True)
def _clean_env(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.chatstudio and from exported keys.

    The router falls back to stored keys and the environment for
    OPENAI_API_KEY and friends; a developer's own keys must not leak into
    credential tests.
    """
    original_env = os.environ.copy()
    for name in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "MISTRAL_API_KEY"):
        os.environ.pop(name, None)
    for name in list(os.environ):
        if name.startswith("CHATSTUDIO_"):
            os.environ.pop(name)

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setattr(Path, "home", lambda: home)
    monkeypatch.setattr(config_module, "_config_manager", None)
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class Upstream:
    """
    Fake upstream API for httpx.MockTransport.

    Records every request and answers with ``handler(request)``.
    """

    def __init__(self, handler=None):
        self.requests: list[httpx.Request] = []
        self.handler = handler or (lambda request: httpx.Response(200, text="ok"))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self))


@pytest.fixture
def upstream():
    """An upstream that answers every request with plain text 'ok'."""
    return Upstream()


@pytest.fixture
def keys():
    """Process-level keys seen by the router (empty by default)."""
    return {}


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def router(upstream, keys):
    return RequestRouter(
        registry=ProviderRegistry(),
        client=upstream.client(),
        key_lookup=keys.get,
    )


@pytest.fixture
def service(store, router):
    return ChatService(MemoryManager(store), router, history_limit=10)


@pytest.fixture
def make_upstream():
    """Factory for upstreams with a custom handler."""
    return Upstream
