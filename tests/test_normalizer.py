"""
Tests for response normalization.
"""

import json

import httpx
import pytest

from chatstudio.core.errors import GenerationFailedError, ProviderError
from chatstudio.core.normalizer import decode_body, normalize, normalize_response


class TestNormalize:
    def test_ollama(self):
        assert normalize("ollama-generate", {"response": "hi"}).content == "hi"

    def test_openai(self):
        payload = {"choices": [{"message": {"content": "hi"}}]}
        assert normalize("openai-chat", payload).content == "hi"

    def test_unknown_shape_is_serialized(self):
        """An empty payload comes back as text instead of raising."""
        result = normalize("custom-json", {})
        assert result.content == "{}"

    def test_unexpected_payload_kept_whole(self):
        payload = {"output": {"generated": "x"}}
        assert json.loads(normalize("custom-json", payload).content) == payload

    def test_unknown_dialect_does_not_raise(self):
        assert normalize("soap", {"a": 1}).content == '{"a": 1}'

    def test_metadata(self):
        payload = {
            "choices": [{"message": {"content": "hi"}}],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1},
        }
        result = normalize("openai-chat", payload, provider_id="openai", model="gpt-4", session_id="s1")
        assert result.provider_id == "openai"
        assert result.model == "gpt-4"
        assert result.session_id == "s1"
        assert result.kind == "text"
        assert result.usage == {"prompt_tokens": 3, "completion_tokens": 1}
        assert result.timestamp.tzinfo is not None

    def test_image_url_passthrough(self):
        result = normalize("pollinations", "data:image/jpeg;base64,AAAA", kind="image")
        assert result.content == "data:image/jpeg;base64,AAAA"
        assert result.kind == "image"

    def test_image_from_json(self):
        result = normalize("openai-chat", {"data": [{"url": "https://img.test/x.png"}]}, kind="image")
        assert result.content == "https://img.test/x.png"


class TestDecodeBody:
    def test_json(self):
        assert decode_body(httpx.Response(200, json={"a": 1})) == {"a": 1}

    def test_plain_text_not_parsed(self):
        """Plain text that happens to look like JSON stays text."""
        response = httpx.Response(200, text='{"a": 1}')
        assert decode_body(response) == '{"a": 1}'

    def test_image_becomes_data_url(self):
        response = httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})
        assert decode_body(response) == "data:image/png;base64,iVBORw=="

    def test_broken_json_is_text(self):
        response = httpx.Response(200, content=b"{oops", headers={"content-type": "application/json"})
        assert decode_body(response) == "{oops"


class TestNormalizeResponse:
    def test_success(self):
        response = httpx.Response(200, json={"response": "hi"})
        result = normalize_response(response, dialect="ollama-generate", provider_id="o", model="llama2")
        assert result.content == "hi"

    def test_error_status(self):
        response = httpx.Response(401, text="bad key")
        with pytest.raises(ProviderError) as exc_info:
            normalize_response(response, dialect="openai-chat", provider_id="openai", model="m")
        err = exc_info.value
        assert isinstance(err, GenerationFailedError)
        assert err.status_code == 401
        assert err.provider_id == "openai"
        assert str(err) == "API error: 401 - bad key"

    def test_error_body_clipped(self):
        response = httpx.Response(500, text="x" * 2000)
        with pytest.raises(ProviderError) as exc_info:
            normalize_response(response, dialect="custom-json", provider_id="c", model="m")
        assert len(str(exc_info.value)) < 600
        assert len(exc_info.value.body) == 2000
