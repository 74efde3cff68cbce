"""
Tests for the translation client's retry and provider fallback policy.

Validates:
- no provider -> fallback shape, never raises
- rate limits retried with exponential backoff (injected sleep)
- non rate-limit errors stop retrying immediately
- alternates tried once each in fixed priority order, only after rate limiting
- confidence 0.9 for the primary, 0.8 for an alternate
"""

import pytest

from devagent.core.errors import ConfigurationError, ProviderError, RateLimitError
from devagent.models.providers import ProviderConfig, RetryConfig
from devagent.models.translation_client import (
    PROVIDER_FALLBACK_ORDER,
    TranslationClient,
    TranslationRequest,
    build_translation_prompt,
)


class ScriptedProviders:
    """Provider client double: per-provider list of results or exceptions."""

    def __init__(self, script):
        self.script = {name: list(items) for name, items in script.items()}
        self.calls = []

    def complete(self, provider, prompt):
        self.calls.append(provider.name)
        items = self.script.get(provider.name) or [ProviderError(provider.name, "no script")]
        item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, Exception):
            raise item
        return item


def _providers(*names):
    return {name: ProviderConfig(name=name, api_key=f"key-{name}") for name in names}


def _request(text="Привет мир"):
    return TranslationRequest(text=text, source_language="russian", target_language="english")


class TestNoProvider:

    def test_fallback_shape(self):
        client = TranslationClient(providers={}, provider_client=ScriptedProviders({}))

        response = client.translate(_request())

        assert response.success is False
        assert response.confidence == 0
        assert response.translated_text == response.original_text == "Привет мир"
        assert response.model == "fallback"
        assert response.error
        assert not client.is_available()

    def test_provider_without_key_is_ignored(self):
        client = TranslationClient(
            providers={"openai": ProviderConfig(name="openai", api_key="")},
            provider_client=ScriptedProviders({}),
        )
        assert client.translate(_request()).success is False


class TestRetry:

    def test_backoff_schedule_then_one_call_per_alternate(self):
        sleeps = []
        scripted = ScriptedProviders({
            "openai": [RateLimitError("openai", "429 Too Many Requests", status_code=429)],
            "gemini": [ProviderError("gemini", "API error: 500")],
            "anthropic": [ProviderError("anthropic", "API error: 500")],
        })
        client = TranslationClient(
            providers=_providers("openai", "gemini", "anthropic"),
            active_provider="openai",
            retry_config=RetryConfig(max_retries=2, retry_delay_ms=1000, backoff_multiplier=2),
            provider_client=scripted,
            sleep=sleeps.append,
        )

        response = client.translate(_request())

        assert sleeps == [1.0, 2.0]
        assert scripted.calls == ["openai", "openai", "openai", "gemini", "anthropic"]
        assert response.success is False
        assert response.confidence == 0
        assert response.translated_text == "Привет мир"

    def test_non_rate_limit_error_is_not_retried(self):
        sleeps = []
        scripted = ScriptedProviders({"openai": [ProviderError("openai", "API error: 401")]})
        client = TranslationClient(
            providers=_providers("openai"),
            provider_client=scripted,
            sleep=sleeps.append,
        )

        response = client.translate(_request())

        assert sleeps == []
        assert scripted.calls == ["openai"]
        assert response.success is False
        assert "401" in response.error

    def test_rate_limit_detected_from_message(self):
        sleeps = []
        scripted = ScriptedProviders({
            "gemini": [ProviderError("gemini", "Quota exceeded for project"), "Hello world"],
        })
        client = TranslationClient(
            providers=_providers("gemini"),
            retry_config=RetryConfig(max_retries=1, retry_delay_ms=500, backoff_multiplier=3),
            provider_client=scripted,
            sleep=sleeps.append,
        )

        response = client.translate(_request())

        assert sleeps == [0.5]
        assert response.success
        assert response.translated_text == "Hello world"
        assert response.confidence == 0.9


class TestFallback:

    def test_alternate_success_confidence(self):
        scripted = ScriptedProviders({
            "anthropic": [RateLimitError("anthropic", "429 Too Many Requests", status_code=429)],
            "gemini": ["Hello world"],
        })
        client = TranslationClient(
            providers=_providers("anthropic", "gemini", "openai"),
            active_provider="anthropic",
            retry_config=RetryConfig(max_retries=0),
            provider_client=scripted,
            sleep=lambda s: None,
        )

        response = client.translate(_request())

        assert response.success
        assert response.confidence == 0.8
        assert response.provider == "gemini"
        # gemini comes first in the fallback order, so openai is never called
        assert scripted.calls == ["anthropic", "gemini"]

    def test_unconfigured_alternates_skipped(self):
        scripted = ScriptedProviders({
            "gemini": [RateLimitError("gemini", "rate limit reached")],
            "anthropic": ["Hello"],
        })
        client = TranslationClient(
            providers=_providers("gemini", "anthropic"),
            retry_config=RetryConfig(max_retries=0),
            provider_client=scripted,
        )

        response = client.translate(_request())

        assert scripted.calls == ["gemini", "anthropic"]
        assert response.provider == "anthropic"

    def test_non_rate_limit_error_skips_alternates(self):
        scripted = ScriptedProviders({
            "openai": [ProviderError("openai", "API error: 401")],
            "gemini": ["Hello world"],
        })
        client = TranslationClient(
            providers=_providers("openai", "gemini"),
            active_provider="openai",
            provider_client=scripted,
            sleep=lambda s: None,
        )

        response = client.translate(_request())

        assert scripted.calls == ["openai"]
        assert response.success is False
        assert response.confidence == 0
        assert response.model == "fallback"
        assert response.translated_text == "Привет мир"
        assert "401" in response.error

    def test_default_active_follows_priority(self):
        client = TranslationClient(providers=_providers("anthropic", "openai"), provider_client=ScriptedProviders({}))
        assert client.provider_info()["name"] == "openai"

    def test_fallback_order_constant(self):
        assert PROVIDER_FALLBACK_ORDER == ("gemini", "openai", "anthropic")

    def test_unexpected_error_still_returns(self):
        class Exploding:
            def complete(self, provider, prompt):
                raise KeyError("boom")

        client = TranslationClient(providers=_providers("openai"), provider_client=Exploding())

        response = client.translate(_request())

        assert response.success is False
        assert response.model == "fallback"


class TestConfiguration:

    def test_retry_config_persisted(self, storage):
        client = TranslationClient.from_storage(storage, provider_client=ScriptedProviders({}))

        client.set_retry_config(max_retries=4, retry_delay_ms=250)

        reloaded = TranslationClient.from_storage(storage, provider_client=ScriptedProviders({}))
        assert reloaded.retry_config == RetryConfig(max_retries=4, retry_delay_ms=250, backoff_multiplier=1.5)

    def test_set_provider_persists_and_becomes_default(self, storage):
        client = TranslationClient.from_storage(storage, provider_client=ScriptedProviders({}))

        client.set_provider(ProviderConfig(name="anthropic", api_key="sk-ant", model="claude-3-haiku-20240307"))

        reloaded = TranslationClient.from_storage(storage, provider_client=ScriptedProviders({}))
        assert reloaded.provider_info() == {
            "name": "anthropic",
            "model": "claude-3-haiku-20240307",
            "has_api_key": True,
        }

    def test_unknown_provider_rejected(self):
        client = TranslationClient(provider_client=ScriptedProviders({}))
        with pytest.raises(ConfigurationError):
            client.set_provider(ProviderConfig(name="mistral", api_key="x"))

    def test_custom_needs_base_url(self):
        client = TranslationClient(provider_client=ScriptedProviders({}))
        with pytest.raises(ConfigurationError):
            client.set_provider(ProviderConfig(name="custom", api_key="x"))

    def test_remove_unknown_provider(self):
        client = TranslationClient(providers=_providers("openai"), provider_client=ScriptedProviders({}))
        with pytest.raises(ConfigurationError):
            client.remove_provider("gemini")

    @pytest.mark.parametrize("overrides", [
        {"max_retries": -1},
        {"backoff_multiplier": 0.5},
        {"retry_delay_ms": "soon"},
    ])
    def test_invalid_retry_config_rejected(self, overrides):
        client = TranslationClient(provider_client=ScriptedProviders({}))
        with pytest.raises(ConfigurationError):
            client.set_retry_config(**overrides)
        assert client.retry_config == RetryConfig()

    def test_describe_providers_hides_keys(self):
        client = TranslationClient(
            providers=_providers("openai", "gemini"),
            active_provider="openai",
            provider_client=ScriptedProviders({}),
        )

        listing = client.describe_providers()

        assert [p["name"] for p in listing] == ["gemini", "openai"]
        assert [p["default"] for p in listing] == [False, True]
        assert all("api_key" not in p for p in listing)

    def test_prompt_mentions_languages_and_text(self):
        prompt = build_translation_prompt(_request("Привет"))
        assert "from russian to english" in prompt
        assert '"Привет"' in prompt
