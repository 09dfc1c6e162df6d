from __future__ import annotations

"""
Branch resolution package.

Provides BranchResolver, which retries a lookup across ordered branch
candidates and stops early on failures unrelated to branch existence.
"""

from .resolver import (  # noqa: F401
    BranchAttempt,
    BranchResolution,
    BranchResolver,
    build_candidates,
)
