"""
Heuristic language detection for the English-only content policy.

Any Cyrillic character classifies the text as Russian.  Otherwise the text
is scored by how many whitespace-separated words match common English
function words and programming keywords.
"""

import re
from dataclasses import dataclass, field
from typing import List

ENGLISH_PATTERNS = [
    re.compile(r"\b(the|a|an|and|or|but|in|on|at|to|for|of|with|by)\b", re.IGNORECASE),
    re.compile(r"\b(is|are|was|were|be|been|being|have|has|had|do|does|did)\b", re.IGNORECASE),
    re.compile(r"\b(this|that|these|those|it|they|them|their|its)\b", re.IGNORECASE),
    re.compile(r"\b(function|class|interface|type|const|let|var|import|export)\b", re.IGNORECASE),
    re.compile(r"\b(if|else|for|while|switch|case|default|return|break|continue)\b", re.IGNORECASE),
]

CYRILLIC = re.compile("[\u0400-\u052F]")
LATIN = re.compile("[a-z]", re.IGNORECASE)

CYRILLIC_CONFIDENCE = 0.9
LOW_CONFIDENCE = 0.3


@dataclass
class LanguageDetection:
    detected_language: str
    confidence: float
    is_english: bool
    needs_translation: bool


@dataclass
class ComplianceReport:
    compliant: bool
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


def english_score(text: str) -> float:
    """Pattern matches per word, with a bonus for longer consistent texts."""
    words = text.lower().split()
    score: float = 0
    for pattern in ENGLISH_PATTERNS:
        score += sum(1 for word in words if pattern.search(word))
    if len(words) > 10:
        score += min(score / len(words) * 5, 3)
    return score


def detect_language(text: str) -> LanguageDetection:
    if not text or not text.strip():
        return LanguageDetection("unknown", 0.0, is_english=True, needs_translation=False)

    if CYRILLIC.search(text):
        return LanguageDetection("russian", CYRILLIC_CONFIDENCE, is_english=False, needs_translation=True)

    score = english_score(text)
    if (LATIN.search(text) and score > 3) or score > 0:
        return LanguageDetection("english", min(score / 10, 1.0), is_english=True, needs_translation=False)
    return LanguageDetection("unknown", 0.0, is_english=False, needs_translation=False)


def needs_translation(text: str) -> bool:
    return detect_language(text).needs_translation


def translation_suggestions(text: str) -> List[str]:
    if not needs_translation(text):
        return []
    return [
        "Content contains non-English text",
        "Consider translating to English for international accessibility",
        "Use English for all documentation, comments, and user-facing text",
    ]


def validate_language_compliance(text: str) -> ComplianceReport:
    """Compliant unless translation is needed; low confidence is reported but tolerated."""
    report = ComplianceReport(compliant=True)
    if not text or not text.strip():
        return report

    detection = detect_language(text)
    if detection.needs_translation:
        report.compliant = False
        report.issues.append(f"Non-English content detected ({detection.detected_language})")
        report.suggestions.append("Translate all content to English")
        report.suggestions.append("Use English for documentation, comments, and user interfaces")
    if detection.confidence < LOW_CONFIDENCE:
        report.issues.append("Low confidence in language detection")
        report.suggestions.append("Review content for mixed languages")
        report.suggestions.append("Ensure consistent language usage")
    return report
