"""
Tests for the provider registry.
"""

import pytest

from chatstudio.core.errors import ProviderUnresolvedError
from chatstudio.core.registry import (
    BUILTIN_PROVIDERS,
    DEFAULT_PROVIDER_ID,
    ProviderRegistry,
    coerce_catalog,
)
from chatstudio.models.provider import ProviderDescriptor


class TestBuiltins:
    def test_default_is_pollinations(self):
        registry = ProviderRegistry()
        assert registry.default.id == DEFAULT_PROVIDER_ID == "pollinations"
        assert registry.default.requires_credential is False

    def test_commercial_builtins_need_keys(self):
        by_id = {p.id: p for p in BUILTIN_PROVIDERS}
        assert by_id["openai"].credential_env == "OPENAI_API_KEY"
        assert by_id["claude"].credential_env == "ANTHROPIC_API_KEY"
        assert by_id["mistral"].credential_env == "MISTRAL_API_KEY"
        assert all(by_id[i].requires_credential for i in ("openai", "claude", "mistral"))
        assert all(p.source == "builtin" for p in BUILTIN_PROVIDERS)

    def test_default_must_be_builtin(self):
        with pytest.raises(ValueError):
            ProviderRegistry(default_id="nope")

    def test_default_markers(self):
        registry = ProviderRegistry()
        assert registry.is_default_marker(None)
        assert registry.is_default_marker("")
        assert registry.is_default_marker("default")
        assert registry.is_default_marker("pollinations")
        assert not registry.is_default_marker("openai")


class TestResolve:
    def test_builtin(self):
        assert ProviderRegistry().resolve("claude").dialect == "anthropic-messages"

    def test_catalog_entry(self):
        catalog = [{"id": "mine", "name": "Mine", "endpoint": "http://mine.test/gen"}]
        provider = ProviderRegistry().resolve("mine", catalog)
        assert provider.endpoint_url == "http://mine.test/gen"
        assert provider.source == "custom"

    def test_builtin_wins_over_catalog(self):
        catalog = [{"id": "openai", "endpoint": "http://impostor.test"}]
        provider = ProviderRegistry().resolve("openai", catalog)
        assert provider.endpoint_url.startswith("https://api.openai.com")

    def test_not_found(self):
        with pytest.raises(ProviderUnresolvedError, match="not found"):
            ProviderRegistry().resolve("ghost")

    def test_disabled(self):
        catalog = [{"id": "off", "endpoint": "http://off.test", "enabled": False}]
        with pytest.raises(ProviderUnresolvedError, match="is disabled"):
            ProviderRegistry().resolve("off", catalog)

    def test_catalog_not_cached(self):
        registry = ProviderRegistry()
        registry.resolve("mine", [{"id": "mine", "endpoint": "http://a.test"}])
        with pytest.raises(ProviderUnresolvedError):
            registry.resolve("mine")


class TestCatalog:
    def test_invalid_entries_skipped(self, caplog):
        entries = [
            {"id": "good", "endpoint": "http://good.test"},
            {"id": "bad"},
            ProviderDescriptor(id="typed", endpoint_url="http://typed.test"),
        ]
        assert [p.id for p in coerce_catalog(entries)] == ["good", "typed"]
        assert "bad" in caplog.text

    def test_non_mapping_entries_skipped(self, caplog):
        entries = ["not-a-dict", 42, None, {"id": "good", "endpoint": "http://good.test"}]
        assert [p.id for p in coerce_catalog(entries)] == ["good"]
        assert "not-a-dict" in caplog.text

    def test_resolve_with_non_mapping_entry(self):
        with pytest.raises(ProviderUnresolvedError, match="not found"):
            ProviderRegistry().resolve("x", ["not-a-dict"])

    def test_list_by_capability(self):
        registry = ProviderRegistry()
        catalog = [{"id": "sd", "endpoint": "http://localhost:7860", "type": "image", "isLocal": True}]
        image_ids = [p.id for p in registry.list("image", catalog)]
        assert image_ids == ["pollinations", "openai", "sd"]
        text_ids = [p.id for p in registry.list("text", catalog)]
        assert "sd" not in text_ids and "claude" in text_ids

    def test_list_all(self):
        assert len(ProviderRegistry().list()) == len(BUILTIN_PROVIDERS)
