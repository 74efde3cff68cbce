"""
Translation client: send text to the active LLM provider with rate-limit
retry, then fall back to the other configured providers.

Policy:
1. No usable provider -> zero-confidence fallback result (never raises).
2. Active provider: up to ``max_retries + 1`` attempts, retrying only on
   rate limiting, sleeping ``retry_delay_ms * backoff_multiplier ** n``
   after failed attempt n.
3. Only once the active provider is still rate limited after its last retry:
   alternates in ``PROVIDER_FALLBACK_ORDER`` (skipping the active one and
   unconfigured ones), one attempt each.  Any other error from the active
   provider goes straight to the fallback result.
4. Everything failed -> the same fallback result with a descriptive error.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from devagent.core.errors import ConfigurationError
from devagent.core.resilience import FallbackChain, is_rate_limit_error, retry_on_rate_limit
from devagent.models.providers import (
    PROVIDER_NAMES,
    LLMProviderClient,
    ProviderConfig,
    RetryConfig,
)
from devagent.utils.config import (
    get_default_provider_name,
    load_provider_configs,
    load_retry_config,
    save_retry_config,
)

logger = logging.getLogger(__name__)

# Alternate providers, most preferred first.  "custom" is never an alternate.
PROVIDER_FALLBACK_ORDER = ("gemini", "openai", "anthropic")

PRIMARY_CONFIDENCE = 0.9
ALTERNATE_CONFIDENCE = 0.8
NOT_CONFIGURED_ERROR = (
    "LLM translation not available. Please configure a provider or translate manually."
)


@dataclass
class TranslationRequest:
    text: str
    source_language: str = "unknown"
    target_language: str = "english"
    context: Optional[str] = None


@dataclass
class TranslationResponse:
    success: bool
    original_text: str
    translated_text: str
    source_language: str
    target_language: str
    confidence: float
    error: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)


def build_translation_prompt(request: TranslationRequest) -> str:
    """Prompt asking for a faithful translation and nothing else."""
    context = f"Context: {request.context}\n" if request.context else ""
    return (
        f"You are a professional translator. Translate the following text from "
        f"{request.source_language} to {request.target_language}.\n\n"
        f"{context}Rules:\n"
        "- Maintain the original meaning and tone\n"
        "- Keep technical terms accurate\n"
        "- Preserve formatting and structure\n"
        "- Return ONLY the translated text, nothing else\n\n"
        "Text to translate:\n"
        f'"{request.text}"\n\n'
        "Translated text:"
    )


class TranslationClient:
    """Multi-provider translation with retry and provider fallback."""

    def __init__(
        self,
        providers: Optional[Dict[str, ProviderConfig]] = None,
        active_provider: Optional[str] = None,
        retry_config: Optional[RetryConfig] = None,
        provider_client: Optional[LLMProviderClient] = None,
        sleep: Callable[[float], None] = time.sleep,
        storage: Any = None,
    ) -> None:
        """
        Args:
            providers: Configured providers keyed by name
            active_provider: Preferred provider name (default: first configured
                in fallback order, then custom)
            retry_config: Rate-limit retry policy (default: RetryConfig())
            provider_client: Object with ``complete(provider, prompt) -> str``
            sleep: Backoff wait function; time.sleep only blocks the calling thread
            storage: Optional storage used to persist provider/retry changes
        """
        self._providers: Dict[str, ProviderConfig] = dict(providers or {})
        self._active_name = active_provider
        self.retry_config = retry_config or RetryConfig()
        self._client = provider_client or LLMProviderClient()
        self._sleep = sleep
        self._storage = storage
        active = self._active_provider()
        logger.info(
            "Translation client initialized (active=%s, configured=%s, retries=%d)",
            active.name if active else None,
            sorted(self._providers),
            self.retry_config.max_retries,
        )

    @classmethod
    def from_storage(
        cls,
        storage: Any,
        provider_client: Optional[LLMProviderClient] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "TranslationClient":
        """Load providers, default provider and retry policy once."""
        return cls(
            providers=load_provider_configs(storage),
            active_provider=get_default_provider_name(storage),
            retry_config=load_retry_config(storage),
            provider_client=provider_client,
            sleep=sleep,
            storage=storage,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def translate(self, request: TranslationRequest) -> TranslationResponse:
        """Translate ``request.text``.  Always returns a response, never raises."""
        try:
            return self._translate(request)
        except Exception as e:
            logger.exception("Translation failed unexpectedly: %s", e)
            return self._fallback(request, f"Translation error: {e}")

    def is_available(self) -> bool:
        return self._active_provider() is not None

    def provider_info(self) -> Optional[Dict[str, Any]]:
        provider = self._active_provider()
        if provider is None:
            return None
        return {
            "name": provider.name,
            "model": provider.effective_model,
            "has_api_key": bool(provider.api_key),
        }

    def configured_providers(self) -> List[str]:
        return sorted(self._providers)

    def describe_providers(self) -> List[Dict[str, Any]]:
        """Configured providers without their keys, active one flagged."""
        active = self._active_provider()
        return [
            {
                "name": p.name,
                "model": p.effective_model,
                "base_url": p.base_url,
                "has_api_key": bool(p.api_key),
                "default": active is not None and active.name == p.name,
            }
            for p in (self._providers[name] for name in sorted(self._providers))
        ]

    def set_provider(self, provider: ProviderConfig, make_default: bool = False) -> None:
        """Add or replace a provider (persisted when storage is attached)."""
        if provider.name not in PROVIDER_NAMES:
            raise ConfigurationError(
                f"Unknown provider '{provider.name}'. Valid: {', '.join(PROVIDER_NAMES)}"
            )
        if not provider.api_key:
            raise ConfigurationError(f"Provider '{provider.name}' needs an API key")
        if provider.name == "custom" and not provider.base_url:
            raise ConfigurationError("Provider 'custom' needs a base URL")
        self._providers[provider.name] = provider
        if self._storage is not None:
            self._storage.set_llm_provider(
                provider.name, provider.api_key, model=provider.model, base_url=provider.base_url
            )
        if make_default or len(self._providers) == 1:
            self.set_default_provider(provider.name)

    def remove_provider(self, name: str) -> None:
        if name not in self._providers:
            raise ConfigurationError(f"Provider '{name}' is not configured")
        self._providers.pop(name)
        if self._active_name == name:
            self._active_name = None
        if self._storage is not None:
            self._storage.remove_llm_provider(name)

    def set_default_provider(self, name: str) -> None:
        if name not in self._providers:
            raise ConfigurationError(f"Provider '{name}' is not configured")
        self._active_name = name
        if self._storage is not None:
            self._storage.set_config("llm.default_provider", name, category="llm")
            if name in self._storage.get_llm_providers():
                self._storage.set_default_llm_provider(name)

    def set_retry_config(self, **overrides: Any) -> RetryConfig:
        """Override retry fields and persist them when storage is attached."""
        current = self.retry_config
        values = {k: v for k, v in overrides.items() if v is not None}
        try:
            updated = RetryConfig(
                max_retries=int(values.get("max_retries", current.max_retries)),
                retry_delay_ms=float(values.get("retry_delay_ms", current.retry_delay_ms)),
                backoff_multiplier=float(values.get("backoff_multiplier", current.backoff_multiplier)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid retry setting: {e}") from None
        if updated.max_retries < 0 or updated.retry_delay_ms < 0 or updated.backoff_multiplier < 1:
            raise ConfigurationError(
                "Retry settings need max_retries >= 0, retry_delay_ms >= 0 and backoff_multiplier >= 1"
            )
        self.retry_config = updated
        if self._storage is not None:
            save_retry_config(self._storage, self.retry_config)
        return self.retry_config

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _active_provider(self) -> Optional[ProviderConfig]:
        if self._active_name:
            chosen = self._providers.get(self._active_name)
            if chosen is not None and chosen.api_key:
                return chosen
        for name in PROVIDER_FALLBACK_ORDER + ("custom",):
            provider = self._providers.get(name)
            if provider is not None and provider.api_key:
                return provider
        return None

    def _translate(self, request: TranslationRequest) -> TranslationResponse:
        primary = self._active_provider()
        if primary is None:
            return self._fallback(request, NOT_CONFIGURED_ERROR)

        prompt = build_translation_prompt(request)
        try:
            text = retry_on_rate_limit(
                lambda: self._client.complete(primary, prompt),
                max_retries=self.retry_config.max_retries,
                delay_for_attempt=self.retry_config.delay_seconds,
                sleep=self._sleep,
                label=f"translate via {primary.name}",
            )
            return self._success(request, text, PRIMARY_CONFIDENCE, primary)
        except Exception as e:
            primary_error = f"{primary.name}: {e}"
            if not is_rate_limit_error(e):
                logger.warning("Primary provider %s failed: %s", primary.name, e)
                return self._fallback(request, f"Translation error: {e}")
            logger.warning("Primary provider %s exhausted its retries: %s", primary.name, e)

        alternates = [
            self._providers[name]
            for name in PROVIDER_FALLBACK_ORDER
            if name != primary.name and name in self._providers and self._providers[name].api_key
        ]
        chain = FallbackChain(
            [(p.name, self._attempt(p, prompt)) for p in alternates]
        ).execute()
        if chain["success"]:
            provider = self._providers[chain["strategy_used"]]
            logger.info("Translated with alternative provider %s", provider.name)
            return self._success(request, chain["result"], ALTERNATE_CONFIDENCE, provider)

        errors = [primary_error] + chain["errors"]
        return self._fallback(request, "All translation providers failed: " + "; ".join(errors))

    def _attempt(self, provider: ProviderConfig, prompt: str) -> Callable[[], str]:
        return lambda: self._client.complete(provider, prompt)

    @staticmethod
    def _success(
        request: TranslationRequest,
        text: str,
        confidence: float,
        provider: ProviderConfig,
    ) -> TranslationResponse:
        return TranslationResponse(
            success=True,
            original_text=request.text,
            translated_text=text,
            source_language=request.source_language,
            target_language=request.target_language,
            confidence=confidence,
            model=provider.effective_model,
            provider=provider.name,
        )

    @staticmethod
    def _fallback(request: TranslationRequest, error: str) -> TranslationResponse:
        return TranslationResponse(
            success=False,
            original_text=request.text,
            translated_text=request.text,
            source_language=request.source_language,
            target_language=request.target_language,
            confidence=0.0,
            error=error,
            model="fallback",
        )
