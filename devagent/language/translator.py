"""
Automatic translation of non-English content to English.

Wraps ``TranslationClient`` with language detection and an in-memory
cache keyed by source language and the normalized first 100 characters.
Only successful translations are cached, so a later call can still succeed
once a provider becomes available.
"""

import logging
import re
from dataclasses import replace
from typing import Dict

from devagent.language.detector import detect_language
from devagent.models.translation_client import (
    TranslationClient,
    TranslationRequest,
    TranslationResponse,
)

logger = logging.getLogger(__name__)

CACHE_KEY_CHARS = 100
DEFAULT_CONTEXT = "software development documentation"
MANUAL_SUGGESTIONS = [
    "Automatic translation failed",
    "Please manually translate the content to English",
]


def cache_key(text: str, source_language: str) -> str:
    normalized = re.sub(r"\s+", "_", text[:CACHE_KEY_CHARS].lower())
    return f"{source_language}:{normalized}"


class AutoTranslator:
    """Detect, translate if needed, cache."""

    def __init__(self, client: TranslationClient) -> None:
        self.client = client
        self._cache: Dict[str, TranslationResponse] = {}
        self._hits = 0
        self._misses = 0

    def auto_translate(self, request: TranslationRequest) -> TranslationResponse:
        detection = detect_language(request.text)
        if not detection.needs_translation:
            return TranslationResponse(
                success=True,
                original_text=request.text,
                translated_text=request.text,
                source_language=detection.detected_language,
                target_language="english",
                confidence=detection.confidence,
                suggestions=["Content is already in English"],
            )

        key = cache_key(request.text, detection.detected_language)
        cached = self._cache.get(key)
        if cached is not None:
            self._hits += 1
            logger.debug("Translation cache hit for %s", key[:40])
            return replace(cached, suggestions=list(cached.suggestions))
        self._misses += 1

        try:
            response = self.client.translate(
                TranslationRequest(
                    text=request.text,
                    source_language=detection.detected_language,
                    target_language="english",
                    context=request.context or DEFAULT_CONTEXT,
                )
            )
        except Exception as e:
            logger.error("Translation failed: %s", e)
            response = TranslationResponse(
                success=False,
                original_text=request.text,
                translated_text=request.text,
                source_language=detection.detected_language,
                target_language="english",
                confidence=0.0,
                error=f"Translation failed: {e}",
            )

        if response.success:
            response.suggestions = [
                "Content automatically translated to English via LLM",
                "Review translation for accuracy",
            ]
            self._cache[key] = replace(response, suggestions=list(response.suggestions))
        else:
            response.suggestions = list(MANUAL_SUGGESTIONS)
        return response

    def is_available(self) -> bool:
        return self.client.is_available()

    def clear_cache(self) -> None:
        self._cache.clear()
        self._hits = self._misses = 0

    def cache_stats(self) -> Dict[str, float]:
        lookups = self._hits + self._misses
        return {
            "size": len(self._cache),
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }
