"""
Language gate: check content before it is saved and translate it when
possible.

Outcomes of ``validate_before_save``:

* English (or empty) content         -> valid
* non-English, translation succeeded -> valid, ``translated_content`` set
* non-English, translation failed    -> warning; invalid only in strict mode
* non-English, auto_translate off    -> invalid
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from devagent.language.detector import detect_language, validate_language_compliance
from devagent.language.translator import AutoTranslator
from devagent.models.translation_client import TranslationRequest

logger = logging.getLogger(__name__)


@dataclass
class ValidationContext:
    entity_type: str
    field_name: str
    content: str
    auto_translate: bool = True
    strict_mode: bool = False


@dataclass
class LanguageValidationResult:
    valid: bool
    original_content: str
    detected_language: str
    confidence: float
    needs_translation: bool
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    translated_content: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LanguageGate:
    """Validates and auto-translates content on its way to storage."""

    def __init__(self, translator: AutoTranslator) -> None:
        self.translator = translator

    def validate_before_save(self, context: ValidationContext) -> LanguageValidationResult:
        where = f"{context.entity_type}.{context.field_name}"
        logger.debug("Validating language for %s", where)
        try:
            return self._validate(context, where)
        except Exception as e:
            logger.exception("Language validation failed for %s: %s", where, e)
            return LanguageValidationResult(
                valid=False,
                original_content=context.content,
                detected_language="unknown",
                confidence=0.0,
                needs_translation=False,
                issues=["Language validation service error"],
                warnings=["Validation service unavailable"],
                suggestions=["Check system configuration"],
            )

    def _validate(self, context: ValidationContext, where: str) -> LanguageValidationResult:
        detection = detect_language(context.content)
        compliance = validate_language_compliance(context.content)
        result = LanguageValidationResult(
            valid=compliance.compliant,
            original_content=context.content,
            detected_language=detection.detected_language,
            confidence=detection.confidence,
            needs_translation=detection.needs_translation,
            issues=list(compliance.issues),
            suggestions=list(compliance.suggestions),
        )

        if context.auto_translate and detection.needs_translation:
            translation = self.translator.auto_translate(
                TranslationRequest(
                    text=context.content,
                    source_language=detection.detected_language,
                    target_language="english",
                    context=where,
                )
            )
            if translation.success:
                result.translated_content = translation.translated_text
                result.suggestions.append("Content automatically translated to English")
                result.valid = True
            else:
                result.warnings.append(
                    f"Auto-translation failed, manual review required: {translation.error}"
                )
                result.valid = not context.strict_mode

        if result.issues:
            logger.warning("Language issues in %s: %s", where, "; ".join(result.issues))
        if result.needs_translation and result.translated_content is None:
            logger.warning("Content needs translation: %s", where)
        return result

    def validate_file_content(self, path: str, content: str) -> LanguageValidationResult:
        return self.validate_before_save(
            ValidationContext(entity_type="file", field_name=path or "content", content=content)
        )

    def validate_goal_content(
        self, title: Optional[str], description: Optional[str] = None
    ) -> List[LanguageValidationResult]:
        """Title is checked strictly, description leniently."""
        results = []
        if title:
            results.append(
                self.validate_before_save(
                    ValidationContext("goal", "title", title, auto_translate=True, strict_mode=True)
                )
            )
        if description:
            results.append(
                self.validate_before_save(
                    ValidationContext("goal", "description", description, auto_translate=True, strict_mode=False)
                )
            )
        return results


def summarize(results: List[LanguageValidationResult]) -> Dict[str, Any]:
    suggestions: List[str] = []
    for r in results:
        for s in r.suggestions:
            if s not in suggestions:
                suggestions.append(s)
    return {
        "overall_valid": all(r.valid for r in results),
        "total_issues": sum(len(r.issues) for r in results),
        "total_warnings": sum(len(r.warnings) for r in results),
        "needs_translation": sum(1 for r in results if r.needs_translation),
        "suggestions": suggestions,
    }


def apply_translations(results: List[LanguageValidationResult]) -> Dict[str, str]:
    """Map original content to its translation, for results that have one."""
    return {
        r.original_content: r.translated_content
        for r in results
        if r.translated_content and r.translated_content != r.original_content
    }
