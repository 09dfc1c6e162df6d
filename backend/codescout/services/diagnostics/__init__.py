from __future__ import annotations

"""
Diagnostics and error classification utilities.

This package currently provides:
- error_classifier: classify failures from CLI executions into a small,
  stable taxonomy used to drive control flow (continue vs abort) and
  user-facing hints.

The goal is to keep error handling logic centralized and deterministic.
"""

from .error_classifier import (  # noqa: F401
    DEFAULT_STRATEGY,
    ClassificationStrategy,
    ErrorClassification,
    HeuristicClassifier,
    ResultAwareClassifier,
    classify,
    describe,
    is_retryable,
)
