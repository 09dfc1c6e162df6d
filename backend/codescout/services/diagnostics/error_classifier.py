from __future__ import annotations

"""backend/codescout/services/diagnostics/error_classifier.py

Centralized error classification for CLI executions.

The hosting and registry CLIs do not guarantee machine-readable errors, so
failures are bucketed by looking at their text. The classification is:
- deterministic (no randomness)
- text-based (pattern matching against known error signatures)
- ordered (earlier buckets win when the vocabulary overlaps, e.g. a
  "403 ... rate limit" message is FORBIDDEN)

Two strategies are provided behind ClassificationStrategy:
- HeuristicClassifier: text heuristics only
- ResultAwareClassifier: explicit gateway markers first, then heuristics
"""

import enum
from typing import Optional, Protocol

from codescout.services.tools.base import (
    FAILURE_MALFORMED_OUTPUT,
    FAILURE_TIMEOUT,
    Result,
)


class ErrorClassification(str, enum.Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    MALFORMED_OUTPUT = "malformed_output"
    UNKNOWN = "unknown"


_ORDERED_SIGNATURES: list[tuple[ErrorClassification, tuple[str, ...]]] = [
    (ErrorClassification.NOT_FOUND, ("404", "not found", "no commit found")),
    (ErrorClassification.FORBIDDEN, ("403", "forbidden")),
    (ErrorClassification.RATE_LIMITED, ("rate limit", "429")),
    (ErrorClassification.TIMEOUT, ("timeout", "timed out")),
]


def _lower(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _contains_any(haystack: str, needles: tuple[str, ...]) -> bool:
    return any(n in haystack for n in needles)


def classify(raw_text: Optional[str]) -> ErrorClassification:
    """Classify raw failure text. Never raises; falls back to UNKNOWN."""
    text = _lower(raw_text)
    if not text:
        return ErrorClassification.UNKNOWN

    for classification, needles in _ORDERED_SIGNATURES:
        if _contains_any(text, needles):
            return classification
    return ErrorClassification.UNKNOWN


class ClassificationStrategy(Protocol):
    """Anything able to bucket a failed Result."""

    def classify_result(self, result: Result) -> ErrorClassification:
        ...


class HeuristicClassifier:
    """Bucket a Result by its text alone."""

    def classify_result(self, result: Result) -> ErrorClassification:
        return classify(result.text)


class ResultAwareClassifier:
    """Prefer what the gateway knows for certain over text guessing."""

    _MARKERS = {
        FAILURE_TIMEOUT: ErrorClassification.TIMEOUT,
        FAILURE_MALFORMED_OUTPUT: ErrorClassification.MALFORMED_OUTPUT,
    }

    def classify_result(self, result: Result) -> ErrorClassification:
        # 1) Respect explicit markers from the gateway
        marker = self._MARKERS.get(result.failure_reason or "")
        if marker is not None:
            return marker

        # 2) Fall back to text heuristics
        return classify(result.text)


DEFAULT_STRATEGY: ClassificationStrategy = ResultAwareClassifier()

_DESCRIPTIONS = {
    ErrorClassification.NOT_FOUND: "The requested resource does not exist.",
    ErrorClassification.FORBIDDEN: (
        "Access denied. Check repository permissions or CLI authentication."
    ),
    ErrorClassification.RATE_LIMITED: "Rate limit reached. Retry after a short wait.",
    ErrorClassification.TIMEOUT: "The command timed out. Retry the request.",
    ErrorClassification.MALFORMED_OUTPUT: (
        "The command produced output that could not be parsed."
    ),
    ErrorClassification.UNKNOWN: "The command failed for an unrecognized reason.",
}


def is_retryable(classification: ErrorClassification) -> bool:
    return classification in (
        ErrorClassification.RATE_LIMITED,
        ErrorClassification.TIMEOUT,
    )


def describe(classification: ErrorClassification) -> str:
    """User-facing guidance for a classification."""
    return _DESCRIPTIONS[classification]
