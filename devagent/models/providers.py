"""
LLM provider calls for translation.

One ``ProviderConfig`` per named backend (openai, gemini, anthropic, custom).
``LLMProviderClient.complete`` sends a single prompt and returns the text, or
raises:

* ``RateLimitError``             - HTTP 429 / quota / "too many requests"
* ``ProviderError``              - any other API or transport failure
* ``TranslationUnavailableError`` - the provider answered with no text

No retries happen here; the retry/fallback policy lives in
``devagent.models.translation_client``.

Setup (any subset):
  OPENAI_API_KEY, GEMINI_API_KEY, ANTHROPIC_API_KEY in .env, or
  CUSTOM_LLM_API_KEY + CUSTOM_LLM_BASE_URL for a self-hosted endpoint.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
import openai

from devagent.core.errors import ProviderError, RateLimitError, TranslationUnavailableError
from devagent.core.resilience import is_rate_limit_message

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ("openai", "gemini", "anthropic", "custom")

DEFAULT_MODELS: Dict[str, str] = {
    "openai": "gpt-3.5-turbo",
    "gemini": "gemini-pro",
    "anthropic": "claude-3-sonnet-20240229",
    "custom": "",
}

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 1000
TEMPERATURE = 0.3
TIMEOUT_SEC = 60.0


@dataclass(frozen=True)
class RetryConfig:
    """Rate-limit retry policy.

    Delay after failed attempt n (0-indexed) is
    ``retry_delay_ms * backoff_multiplier ** n``.
    """

    max_retries: int = 2
    retry_delay_ms: float = 20000
    backoff_multiplier: float = 1.5

    def delay_seconds(self, attempt: int) -> float:
        return self.retry_delay_ms * (self.backoff_multiplier ** attempt) / 1000.0


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and endpoint for one provider."""

    name: str
    api_key: str
    model: Optional[str] = None
    base_url: Optional[str] = None

    @property
    def effective_model(self) -> str:
        return self.model or DEFAULT_MODELS.get(self.name, "")

    def __repr__(self) -> str:
        # never print API keys
        return f"ProviderConfig(name={self.name!r}, model={self.model!r}, base_url={self.base_url!r})"


class LLMProviderClient:
    """Sends prompts to whichever provider a ``ProviderConfig`` names."""

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        timeout: float = TIMEOUT_SEC,
    ) -> None:
        self._timeout = timeout
        self._http = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._http.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def complete(self, provider: ProviderConfig, prompt: str) -> str:
        """Return the provider's text answer for ``prompt``."""
        start = time.perf_counter()
        if provider.name == "openai":
            text = self._call_openai(provider, prompt)
        elif provider.name == "gemini":
            text = self._call_gemini(provider, prompt)
        elif provider.name == "anthropic":
            text = self._call_anthropic(provider, prompt)
        elif provider.name == "custom":
            text = self._call_custom(provider, prompt)
        else:
            raise ProviderError(provider.name, "unknown provider")

        text = (text or "").strip()
        duration_ms = int((time.perf_counter() - start) * 1000)
        if not text:
            raise TranslationUnavailableError(f"{provider.name} returned an empty response")
        logger.info(
            "LLM [%s/%s]: %d chars in %d ms",
            provider.name, provider.effective_model, len(text), duration_ms,
        )
        return text

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _call_openai(self, provider: ProviderConfig, prompt: str) -> str:
        """Chat Completions through the openai SDK (SDK retries disabled)."""
        client = openai.OpenAI(
            api_key=provider.api_key,
            base_url=provider.base_url or None,
            max_retries=0,
            timeout=self._timeout,
            http_client=self._http,
        )
        try:
            response = client.chat.completions.create(
                model=provider.effective_model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
            )
        except openai.RateLimitError as e:
            raise RateLimitError("openai", str(e), status_code=429) from e
        except openai.APIStatusError as e:
            if e.status_code == 429 or is_rate_limit_message(str(e)):
                raise RateLimitError("openai", str(e), status_code=e.status_code) from e
            raise ProviderError("openai", f"API error: {e.status_code}", status_code=e.status_code) from e
        except openai.APIError as e:
            raise ProviderError("openai", str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _call_gemini(self, provider: ProviderConfig, prompt: str) -> str:
        base = (provider.base_url or GEMINI_BASE_URL).rstrip("/")
        url = f"{base}/models/{provider.effective_model}:generateContent"
        body = self._post(
            provider,
            url,
            params={"key": provider.api_key},
            headers={"Content-Type": "application/json"},
            payload={"contents": [{"parts": [{"text": prompt}]}]},
        )
        try:
            return body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""

    def _call_anthropic(self, provider: ProviderConfig, prompt: str) -> str:
        base = (provider.base_url or ANTHROPIC_BASE_URL).rstrip("/")
        body = self._post(
            provider,
            f"{base}/messages",
            headers={
                "Content-Type": "application/json",
                "x-api-key": provider.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            payload={
                "model": provider.effective_model,
                "max_tokens": MAX_TOKENS,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        try:
            return body["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""

    def _call_custom(self, provider: ProviderConfig, prompt: str) -> str:
        if not provider.base_url:
            raise ProviderError("custom", "custom provider requires base_url")
        body = self._post(
            provider,
            provider.base_url,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {provider.api_key}",
            },
            payload={
                "prompt": prompt,
                "model": provider.model,
                "max_tokens": MAX_TOKENS,
                "temperature": TEMPERATURE,
            },
        )
        if not isinstance(body, dict):
            return ""
        return body.get("text") or body.get("response") or body.get("content") or ""

    def _post(
        self,
        provider: ProviderConfig,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        params: Optional[Dict[str, str]] = None,
    ) -> Any:
        """POST JSON and return the decoded body, mapping failures to errors."""
        try:
            resp = self._http.post(url, json=payload, headers=headers, params=params, timeout=self._timeout)
        except httpx.HTTPError as e:
            raise ProviderError(provider.name, f"request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError(provider.name, "API error: 429 Too Many Requests", status_code=429)
        if resp.status_code >= 400:
            detail = resp.text[:200]
            if is_rate_limit_message(detail):
                raise RateLimitError(provider.name, f"API error: {resp.status_code} {detail}", status_code=resp.status_code)
            raise ProviderError(provider.name, f"API error: {resp.status_code}", status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(provider.name, "response is not JSON") from e
