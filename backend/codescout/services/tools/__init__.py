from __future__ import annotations

"""backend/codescout/services/tools/__init__.py

Tool adapter registry.

This module exposes a single convenience helper `get_default_tool_runners`
that constructs runner instances for both supported CLIs:

- GitHub (code, repository, commit, issue and pull request search; file
  content; repository structure)
- npm (package search, package view)

Both runners share one CommandGateway and one CacheStore, which the caller
constructs and passes in.
"""

from typing import Any, Dict


def get_default_tool_runners(gateway: Any, cache: Any, settings: Any) -> Dict[str, Any]:
    # Import inside the function to avoid circular imports at module load time.
    from codescout.services.tools.github_tool import GitHubToolRunner
    from codescout.services.tools.npm_tool import NpmToolRunner

    runners = [
        GitHubToolRunner(
            gateway,
            cache,
            timeout_ms=settings.command_timeout_ms,
            branch_conventions=settings.branch_candidates,
            structure_item_limit=settings.structure_item_limit,
            use_cache=settings.cache_enabled,
        ),
        NpmToolRunner(
            gateway,
            cache,
            timeout_ms=settings.command_timeout_ms,
            use_cache=settings.cache_enabled,
        ),
    ]
    return {runner.name: runner for runner in runners}
