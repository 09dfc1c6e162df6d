"""Tests for branch fallback resolution."""

import pytest

from codescout.services.branches import BranchResolver, build_candidates
from codescout.services.diagnostics import ErrorClassification, HeuristicClassifier
from codescout.services.tools.base import FAILURE_TIMEOUT, Result


def scripted(outcomes):
    """Attempt callable answering from a branch->Result map, recording calls."""
    calls = []

    async def attempt(branch: str) -> Result:
        calls.append(branch)
        return outcomes[branch]

    return attempt, calls


OK = Result.text_result("listing")
NOT_FOUND = Result.error("gh: Not Found (HTTP 404)")
FORBIDDEN = Result.error("HTTP 403: Forbidden")


def test_build_candidates_keeps_order_and_dedupes():
    assert build_candidates("feature-x") == ("feature-x", "main", "master", "develop", "trunk")
    assert build_candidates("main") == ("main", "master", "develop", "trunk")
    assert build_candidates("master", ["main", "master"]) == ("master", "main")
    assert build_candidates(None, ["main"]) == ("main",)
    assert build_candidates("  ", ["main"]) == ("main",)


async def test_falls_back_to_next_branch_on_not_found():
    attempt, calls = scripted({"feature-x": NOT_FOUND, "main": OK, "master": OK})

    resolution = await BranchResolver().resolve(["feature-x", "main", "master"], attempt)

    assert resolution.succeeded
    assert resolution.used_branch == "main"
    assert resolution.requested_branch == "feature-x"
    assert resolution.fallback_used
    assert "feature-x" in resolution.notice and "main" in resolution.notice
    assert resolution.result == OK
    assert calls == ["feature-x", "main"]
    assert [a.classification for a in resolution.attempts] == [
        ErrorClassification.NOT_FOUND,
        None,
    ]


async def test_first_branch_success_has_no_notice():
    attempt, calls = scripted({"main": OK})
    resolution = await BranchResolver().resolve(["main", "master"], attempt)

    assert resolution.succeeded
    assert not resolution.fallback_used
    assert resolution.notice is None
    assert calls == ["main"]


async def test_aborts_immediately_on_forbidden():
    attempt, calls = scripted({"feature-x": FORBIDDEN, "main": OK})

    resolution = await BranchResolver().resolve(["feature-x", "main"], attempt)

    assert not resolution.succeeded
    assert resolution.aborted
    assert calls == ["feature-x"]
    assert len(resolution.attempts) == 1
    assert resolution.last_classification is ErrorClassification.FORBIDDEN


@pytest.mark.parametrize(
    "failure",
    [
        Result.error("API rate limit exceeded (429)"),
        Result.error("killed", failure_reason=FAILURE_TIMEOUT),
        Result.error("something odd"),
    ],
)
async def test_aborts_on_any_non_not_found_failure(failure):
    attempt, calls = scripted({"a": NOT_FOUND, "b": failure, "c": OK})

    resolution = await BranchResolver().resolve(["a", "b", "c"], attempt)

    assert not resolution.succeeded
    assert calls == ["a", "b"]


async def test_exhaustion_reports_every_tried_branch():
    branches = ["feature-x", "main", "master", "develop", "trunk"]
    attempt, calls = scripted({b: NOT_FOUND for b in branches})

    resolution = await BranchResolver().resolve(branches, attempt)

    assert not resolution.succeeded
    assert not resolution.aborted
    assert calls == branches
    assert resolution.tried_branches == branches
    assert resolution.last_classification is ErrorClassification.NOT_FOUND
    assert resolution.result == NOT_FOUND
    assert resolution.notice.startswith(
        "tried branches: feature-x, main, master, develop, trunk; last error: "
    )


async def test_injected_strategy_is_used():
    # Text-only strategy cannot see the timeout marker, so "killed" is UNKNOWN.
    attempt, _ = scripted({"a": Result.error("killed", failure_reason=FAILURE_TIMEOUT)})
    resolution = await BranchResolver(HeuristicClassifier()).resolve(["a"], attempt)
    assert resolution.last_classification is ErrorClassification.UNKNOWN


async def test_empty_candidates_rejected():
    attempt, _ = scripted({})
    with pytest.raises(ValueError):
        await BranchResolver().resolve([], attempt)
