"""Integration tests for the FastAPI server endpoints."""

from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

from chatstudio.core.chat import ChatService
from chatstudio.core.local_models import ConnectionStatus
from chatstudio.core.memory import MemoryManager
from chatstudio.core.router import RequestRouter
from chatstudio.server.app import create_app


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service))


@pytest.fixture
def failing_client(store, make_upstream):
    upstream = make_upstream(lambda r: httpx.Response(500, text="upstream exploded"))
    router = RequestRouter(client=upstream.client(), key_lookup=lambda name: None)
    return TestClient(create_app(service=ChatService(MemoryManager(store), router)))


class TestHealth:
    def test_health_returns_ok(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["service"] == "chatstudio"


class TestGenerate:
    def test_new_session(self, client, store):
        resp = client.post("/api/generate", json={"prompt": "hello"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["content"] == "ok"
        assert data["provider_id"] == "pollinations"
        assert data["session_id"].startswith("session_")
        assert len(store.query(data["session_id"])) == 2

    def test_camel_case_fields(self, client, upstream):
        resp = client.post(
            "/api/generate",
            json={
                "prompt": "hi",
                "sessionId": "abc",
                "selectedApi": "box",
                "customApis": [{"id": "box", "name": "Box", "endpoint": "http://box.test/run"}],
                "maxTokens": 5,
                "files": [{"name": "a.txt", "type": "text/plain", "size": 1, "content": "A"}],
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["session_id"] == "abc"
        assert data["provider_id"] == "box"
        assert data["files_processed"] == 1
        assert upstream.requests[0].url == "http://box.test/run"

    def test_local_models_catalog(self, client, upstream):
        resp = client.post(
            "/api/generate",
            json={
                "prompt": "hi",
                "providerId": "lm",
                "localModels": [{"id": "lm", "endpoint": "http://localhost:1234", "format": "openai"}],
            },
        )
        # LM Studio speaks OpenAI but is local, so no key is needed
        assert resp.status_code == 200
        assert upstream.requests[0].url == "http://localhost:1234/v1/chat/completions"

    def test_blank_prompt(self, client, upstream):
        resp = client.post("/api/generate", json={"prompt": "  "})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Prompt is required"
        assert upstream.calls == 0

    def test_missing_credential(self, client, upstream):
        resp = client.post("/api/generate", json={"prompt": "hi", "providerId": "openai"})
        assert resp.status_code == 400
        assert resp.json()["provider_id"] == "openai"
        assert upstream.calls == 0

    def test_invalid_temperature(self, client):
        resp = client.post("/api/generate", json={"prompt": "hi", "temperature": 9})
        assert resp.status_code == 400

    def test_upstream_failure(self, failing_client):
        resp = failing_client.post("/api/generate", json={"prompt": "hi"})
        assert resp.status_code == 502
        data = resp.json()
        assert data["provider_id"] == "pollinations"
        assert data["status_code"] == 500
        assert data["error"].startswith("API error: 500")

    def test_image(self, client, upstream):
        resp = client.post("/api/generate/image", json={"prompt": "fox", "negativePrompt": "blur"})
        assert resp.status_code == 200
        assert resp.json()["kind"] == "image"
        assert "negative%20prompt" in str(upstream.requests[0].url)

    def test_generate_image_options(self, client, upstream):
        body = {"prompt": "fox", "steps": 12, "guidanceScale": 5.5, "enhance": True, "safetyChecker": False}
        resp = client.post("/api/generate/image", json=body)
        assert resp.status_code == 200
        params = upstream.requests[0].url.params
        assert params["steps"] == "12"
        assert params["guidance_scale"] == "5.5"
        assert params["enhance"] == "true"
        assert params["safety_checker"] == "false"

    def test_generate_image_bad_steps(self, client):
        resp = client.post("/api/generate/image", json={"prompt": "fox", "steps": 0})
        assert resp.status_code == 400


class TestMemory:
    def test_get_history(self, client, store):
        store.append("s1", "user", "a")
        store.append("s1", "assistant", "b")
        resp = client.get("/api/memory", params={"sessionId": "s1"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["sessionId"] == "s1"
        assert data["messageCount"] == 2
        assert [m["role"] for m in data["memory"]] == ["user", "assistant"]

    def test_clear_via_get(self, client, store):
        store.append("s1", "user", "a")
        resp = client.get("/api/memory", params={"sessionId": "s1", "action": "clear"})
        assert resp.json() == {"success": True, "message": "Memory cleared successfully", "sessionId": "s1"}
        assert store.query("s1") == []

    def test_save(self, client, store):
        resp = client.post(
            "/api/memory",
            json={"action": "save", "sessionId": "s2", "message": {"role": "user", "content": "saved"}},
        )
        assert resp.status_code == 200
        assert [t.content for t in store.query("s2")] == ["saved"]

    def test_clear_via_post(self, client, store):
        store.append("s3", "user", "a")
        resp = client.post("/api/memory", json={"action": "clear", "sessionId": "s3"})
        assert resp.status_code == 200
        assert store.query("s3") == []

    def test_invalid_action(self, client):
        resp = client.post("/api/memory", json={"action": "explode"})
        assert resp.status_code == 400

    def test_delete(self, client, store):
        store.append("s4", "user", "a")
        resp = client.delete("/api/memory/s4")
        assert resp.status_code == 200
        assert store.query("s4") == []


class TestProviders:
    def test_list(self, client):
        resp = client.get("/api/providers")
        assert resp.status_code == 200
        ids = [p["id"] for p in resp.json()]
        assert ids == ["pollinations", "openai", "mistral", "claude"]
        assert all("credential" not in p for p in resp.json())

    def test_filter(self, client):
        resp = client.get("/api/providers", params={"capability": "image"})
        assert [p["id"] for p in resp.json()] == ["pollinations", "openai"]


class TestLocal:
    def test_endpoints(self, client):
        resp = client.get("/api/local/endpoints")
        assert resp.json()["ollama"] == "http://localhost:11434"

    def test_action_required(self, client):
        resp = client.post("/api/local", json={})
        assert resp.status_code == 400

    def test_test_connection(self, client):
        status = ConnectionStatus(connected=True, details="ok", endpoint="http://localhost:11434", dialect="ollama-generate")
        with patch("chatstudio.core.local_models.check_connection", return_value=status) as probe:
            resp = client.post(
                "/api/local",
                json={
                    "action": "testConnection",
                    "modelConfig": {"id": "o", "name": "Ollama", "endpoint": "http://localhost:11434", "type": "text", "format": "ollama"},
                },
            )
        assert resp.status_code == 200
        assert resp.json()["connected"] is True
        assert probe.call_args.args[0].source == "local"

    def test_list_models(self, client):
        with patch("chatstudio.core.local_models.list_models", return_value=[{"name": "phi3"}]):
            resp = client.post(
                "/api/local",
                json={"action": "listModels", "modelConfig": {"id": "o", "endpoint": "http://localhost:11434"}},
            )
        assert resp.json() == {"models": [{"name": "phi3"}]}

    def test_generate(self, client, upstream):
        resp = client.post(
            "/api/local",
            json={
                "action": "generate",
                "prompt": "hi",
                "modelConfig": {"id": "o", "endpoint": "http://localhost:11434", "format": "ollama"},
                "options": {"model": "phi3"},
            },
        )
        assert resp.status_code == 200
        assert resp.json()["model"] == "phi3"
        assert upstream.requests[0].url == "http://localhost:11434/api/generate"

    def test_invalid_config(self, client):
        resp = client.post("/api/local", json={"action": "listModels", "modelConfig": {"name": "no id"}})
        assert resp.status_code == 400
