"""Tests for error classification heuristics and strategies."""

import pytest

from codescout.services.diagnostics import (
    ErrorClassification,
    HeuristicClassifier,
    ResultAwareClassifier,
    classify,
    describe,
    is_retryable,
)
from codescout.services.tools.base import (
    FAILURE_MALFORMED_OUTPUT,
    FAILURE_TIMEOUT,
    Result,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("404 Not Found", ErrorClassification.NOT_FOUND),
        ("gh: Not Found (HTTP 404)", ErrorClassification.NOT_FOUND),
        ("No commit found for the ref feature-x", ErrorClassification.NOT_FOUND),
        ("403 Forbidden", ErrorClassification.FORBIDDEN),
        ("API rate limit exceeded (429)", ErrorClassification.RATE_LIMITED),
        ("connection timed out", ErrorClassification.TIMEOUT),
        ("request timeout", ErrorClassification.TIMEOUT),
        ("weird upstream glitch", ErrorClassification.UNKNOWN),
    ],
)
def test_classify_examples(text, expected):
    assert classify(text) is expected


def test_classify_is_case_insensitive():
    assert classify("NOT FOUND") is ErrorClassification.NOT_FOUND
    assert classify("FORBIDDEN") is ErrorClassification.FORBIDDEN
    assert classify("Rate Limit hit") is ErrorClassification.RATE_LIMITED


def test_earlier_bucket_wins_on_overlap():
    # Forbidden is checked before rate limiting.
    assert classify("HTTP 403: API rate limit exceeded") is ErrorClassification.FORBIDDEN
    # Not found is checked before timeouts.
    assert classify("not found after timeout") is ErrorClassification.NOT_FOUND


def test_classify_empty_and_none_are_unknown():
    assert classify("") is ErrorClassification.UNKNOWN
    assert classify(None) is ErrorClassification.UNKNOWN


def test_heuristic_classifier_ignores_markers():
    result = Result.error("weird", failure_reason=FAILURE_TIMEOUT)
    assert HeuristicClassifier().classify_result(result) is ErrorClassification.UNKNOWN


def test_result_aware_classifier_prefers_markers():
    strategy = ResultAwareClassifier()
    timeout = Result.error("killed", failure_reason=FAILURE_TIMEOUT)
    malformed = Result.error("404 in garbage", failure_reason=FAILURE_MALFORMED_OUTPUT)
    plain = Result.error("HTTP 404")
    assert strategy.classify_result(timeout) is ErrorClassification.TIMEOUT
    assert strategy.classify_result(malformed) is ErrorClassification.MALFORMED_OUTPUT
    assert strategy.classify_result(plain) is ErrorClassification.NOT_FOUND


def test_retryable_and_descriptions():
    assert is_retryable(ErrorClassification.RATE_LIMITED)
    assert is_retryable(ErrorClassification.TIMEOUT)
    assert not is_retryable(ErrorClassification.NOT_FOUND)
    assert not is_retryable(ErrorClassification.FORBIDDEN)
    assert "authentication" in describe(ErrorClassification.FORBIDDEN)
    for classification in ErrorClassification:
        assert describe(classification)
