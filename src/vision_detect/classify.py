"""Lexical detection classifier for free-text model answers.

The model is asked for JSON but answers are inspected as plain text, so the
decision comes from two fixed vocabularies:

    positive > negative and positive > 0  -> detected, min(0.95, 0.5 + 0.1 * positive)
    negative > positive                   -> not detected, min(0.95, 0.5 + 0.1 * negative)
    otherwise (tie, including 0 / 0)      -> not detected, 0.3
    empty or missing text                 -> not detected, 0.1

Scores count distinct indicators found as case-insensitive substrings.
"""

import json
import re

POSITIVE_INDICATORS = (
    "detected",
    "visible",
    "present",
    "found",
    "spotted",
    "observed",
    "appears",
    "flying",
    "perched",
    "movement",
)

NEGATIVE_INDICATORS = (
    "no",
    "not detected",
    "not visible",
    "not present",
    "not found",
    "absent",
    "cannot see",
    "unable to detect",
)

EMPTY_CONFIDENCE = 0.1
TIE_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.95


def indicator_scores(text: str) -> tuple[int, int]:
    """Return (positive_score, negative_score) for lower-cased text."""
    lowered = text.lower()
    positive = sum(1 for term in POSITIVE_INDICATORS if term in lowered)
    negative = sum(1 for term in NEGATIVE_INDICATORS if term in lowered)
    return positive, negative


def classify(text: str | None) -> tuple[bool, float]:
    """Classify a model answer into (detected, confidence)."""
    if not text or not text.strip():
        return False, EMPTY_CONFIDENCE

    positive, negative = indicator_scores(text)

    if positive > negative and positive > 0:
        return True, min(MAX_CONFIDENCE, 0.5 + 0.1 * positive)
    if negative > positive:
        return False, min(MAX_CONFIDENCE, 0.5 + 0.1 * negative)
    return False, TIE_CONFIDENCE


def unwrap_description(text: str | None) -> str:
    """Strip a `{"detected": ..., "description": ...}` wrapper down to the description.

    Accepts bare JSON or JSON embedded in surrounding text (e.g. a fenced
    code block). Text without such an object is returned unchanged.
    """
    if not text:
        return text or ""

    candidates = [text.strip()]
    json_match = re.search(r"\{[\s\S]*\}", text)
    if json_match and json_match.group() != candidates[0]:
        candidates.append(json_match.group())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict) and isinstance(data.get("description"), str):
            return data["description"]

    return text
