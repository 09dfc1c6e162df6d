from __future__ import annotations

"""backend/codescout/services/branches/resolver.py

Branch fallback for content and structure lookups.

A caller-requested branch may not exist (``main`` vs ``master`` and
friends). The resolver walks an ordered candidate list, one attempt at a
time:

- success              -> stop, report the branch that worked
- NOT_FOUND            -> this branch does not exist, try the next one
- any other failure    -> abort; another branch name cannot fix it

The attempt callable is injected, so the resolver never knows which CLI
call it is probing with.
"""

from dataclasses import dataclass, field
import logging
from typing import Awaitable, Callable, Iterable, Sequence, Tuple

from codescout.services.diagnostics.error_classifier import (
    DEFAULT_STRATEGY,
    ClassificationStrategy,
    ErrorClassification,
)
from codescout.services.tools.base import Result

logger = logging.getLogger(__name__)

Attempt = Callable[[str], Awaitable[Result]]


def build_candidates(
    requested: str | None,
    conventions: Iterable[str] = ("main", "master", "develop", "trunk"),
) -> Tuple[str, ...]:
    """Requested branch first, then conventions; duplicates dropped in order."""
    ordered: list[str] = []
    for name in [requested or "", *conventions]:
        name = name.strip()
        if name and name not in ordered:
            ordered.append(name)
    return tuple(ordered)


@dataclass(frozen=True)
class BranchAttempt:
    branch: str
    # None when the attempt succeeded
    classification: ErrorClassification | None = None

    @property
    def succeeded(self) -> bool:
        return self.classification is None


@dataclass(frozen=True)
class BranchResolution:
    """Outcome of one resolve() call."""

    used_branch: str | None
    requested_branch: str
    succeeded: bool
    attempts: Tuple[BranchAttempt, ...] = field(default_factory=tuple)
    last_classification: ErrorClassification | None = None
    # Result of the successful attempt, or of the last failed one
    result: Result | None = None

    @property
    def tried_branches(self) -> list[str]:
        return [a.branch for a in self.attempts]

    @property
    def fallback_used(self) -> bool:
        return self.succeeded and self.used_branch != self.requested_branch

    @property
    def aborted(self) -> bool:
        return (
            not self.succeeded
            and self.last_classification is not None
            and self.last_classification is not ErrorClassification.NOT_FOUND
        )

    @property
    def notice(self) -> str | None:
        if self.fallback_used:
            return (
                f"Branch fallback: '{self.requested_branch}' was not found, "
                f"used '{self.used_branch}' instead"
            )
        if self.succeeded:
            return None
        last_error = self.result.text.strip() if self.result is not None else ""
        return (
            f"tried branches: {', '.join(self.tried_branches)}; "
            f"last error: {last_error or self.last_classification}"
        )


class BranchResolver:
    """Sequentially try candidate branches with an injected attempt call."""

    def __init__(self, strategy: ClassificationStrategy | None = None) -> None:
        self.strategy = strategy or DEFAULT_STRATEGY

    async def resolve(
        self,
        candidates: Sequence[str],
        attempt: Attempt,
    ) -> BranchResolution:
        if not candidates:
            raise ValueError("At least one branch candidate is required")

        requested = candidates[0]
        attempts: list[BranchAttempt] = []
        last_result: Result | None = None
        last_classification: ErrorClassification | None = None

        for branch in candidates:
            result = await attempt(branch)

            if not result.is_error:
                attempts.append(BranchAttempt(branch=branch))
                if branch != requested:
                    logger.info(
                        "Branch fallback: '%s' -> '%s'", requested, branch
                    )
                return BranchResolution(
                    used_branch=branch,
                    requested_branch=requested,
                    succeeded=True,
                    attempts=tuple(attempts),
                    result=result,
                )

            classification = self.strategy.classify_result(result)
            attempts.append(BranchAttempt(branch=branch, classification=classification))
            last_result = result
            last_classification = classification

            if classification is not ErrorClassification.NOT_FOUND:
                logger.debug(
                    "Aborting branch probing on '%s': %s", branch, classification.value
                )
                break

        return BranchResolution(
            used_branch=None,
            requested_branch=requested,
            succeeded=False,
            attempts=tuple(attempts),
            last_classification=last_classification,
            result=last_result,
        )
