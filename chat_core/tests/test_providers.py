import pytest

from chat_core.providers import create_provider
from chat_core.providers.perplexity_client import PerplexityClient
from chat_core.providers.registry import PERPLEXITY_CONFIG, get_provider_config
from chat_core.domain.exceptions import ConfigurationError


def test_create_provider_default(monkeypatch):
    class DummySettings:
        perplexity_api_key = "pplx-dummy-key"
        perplexity_base_url = "https://api.perplexity.ai"
        http_timeout = 1.0
        default_model = "sonar"

    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, PerplexityClient)
    assert provider.default_model == "sonar"


def test_create_provider_without_key(monkeypatch):
    class DummySettings:
        perplexity_api_key = None

    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    with pytest.raises(ConfigurationError):
        create_provider()


def test_registry_lookup_is_case_insensitive():
    assert get_provider_config("Perplexity") is PERPLEXITY_CONFIG
    with pytest.raises(KeyError):
        get_provider_config("kimi")


def test_unknown_model_uses_default_model_parameters():
    cfg = PERPLEXITY_CONFIG.model("sonar-reasoning")
    assert cfg.model_id == "sonar-reasoning"
    assert cfg.max_tokens == 1000
    assert cfg.default_temperature == 0.2
