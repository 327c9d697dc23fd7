"""Tests for client model name resolution."""

import pytest

from turnproxy.core.exceptions import ConfigurationError
from turnproxy.core.models import ModelResolver, ModelRoute, normalize_request_model


class TestNormalizeRequestModel:
    """Tests for request model normalization."""

    def test_strips_whitespace(self):
        assert normalize_request_model("  gpt-4.1 ") == "gpt-4.1"

    def test_strips_openai_prefix(self):
        assert normalize_request_model("openai/gpt-4.1") == "gpt-4.1"
        assert normalize_request_model("OpenAI/gpt-4.1") == "gpt-4.1"

    def test_keeps_other_prefixes(self):
        assert normalize_request_model("local/qwen") == "local/qwen"


class TestModelResolver:
    """Tests for ModelResolver."""

    def test_from_config_builds_routes(self):
        resolver = ModelResolver.from_config(
            {
                "model_list": [
                    {"model_name": "gpt-4.1", "model_params": {"model": "gpt-4.1-mini"}},
                    {"model_name": "codex"},
                ]
            }
        )
        assert [route.name for route in resolver.routes] == ["gpt-4.1", "codex"]
        assert resolver.resolve("gpt-4.1") == "gpt-4.1-mini"
        assert resolver.resolve("codex") == "codex"

    def test_lookup_is_case_insensitive(self):
        resolver = ModelResolver([ModelRoute("GPT-4.1", "upstream")])
        assert resolver.resolve("gpt-4.1") == "upstream"
        assert resolver.get("Gpt-4.1").name == "GPT-4.1"

    def test_unknown_model_raises_configuration_error(self):
        resolver = ModelResolver([ModelRoute("gpt-4.1", "upstream")])
        with pytest.raises(ConfigurationError) as exc_info:
            resolver.resolve("missing-model")
        assert exc_info.value.status_code == 404
        assert "missing-model" in exc_info.value.message

    def test_passthrough_forwards_unknown_models(self):
        resolver = ModelResolver([], passthrough=True)
        assert resolver.resolve("anything") == "anything"

    def test_passthrough_from_config(self):
        resolver = ModelResolver.from_config(
            {"proxy_settings": {"passthrough_unknown_models": True}}
        )
        assert resolver.passthrough is True

    def test_rejects_entry_without_name(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ModelResolver.from_config({"model_list": [{"model_params": {"model": "x"}}]})
        assert exc_info.value.code == "invalid_config"

    def test_rejects_non_mapping_entry(self):
        with pytest.raises(ConfigurationError):
            ModelResolver.from_config({"model_list": ["gpt-4.1"]})
