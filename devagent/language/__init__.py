"""English-only content policy (detection, auto-translation, save gate)."""

from devagent.language.detector import detect_language, validate_language_compliance
from devagent.language.gate import LanguageGate, LanguageValidationResult, ValidationContext
from devagent.language.translator import AutoTranslator

__all__ = [
    "AutoTranslator",
    "LanguageGate",
    "LanguageValidationResult",
    "ValidationContext",
    "detect_language",
    "validate_language_compliance",
]
