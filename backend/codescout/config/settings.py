from __future__ import annotations

"""backend/codescout/config/settings.py

Application configuration using environment-driven settings.

This module centralizes:
- CLI binaries used for the git-hosting and package-registry tools
- Default command timeout and extra environment for child processes
- Cache sizing, sweep interval and the per-category TTL table
- The branch-name convention list used for branch fallback
- CORS configuration
"""
from functools import lru_cache
from typing import Dict, List

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CACHE_TTL_SECONDS: Dict[str, int] = {
    # Hosting CLI: searches change often
    "gh-code": 3600,
    "gh-repos": 7200,
    "gh-issues": 1800,
    "gh-prs": 1800,
    "gh-commits": 3600,
    "gh-file-content": 7200,
    "gh-repo-structure": 7200,
    # Registry CLI: package metadata is more stable
    "npm-view": 14400,
    "npm-search": 7200,
    "default": 86400,
}

DEFAULT_BRANCH_CANDIDATES: List[str] = ["main", "master", "develop", "trunk"]


class Settings(BaseSettings):
  app_name: str = "codescout-backend"
  environment: str = "development"
  log_level: str = "INFO"

  # External CLIs
  gh_binary: str = "gh"
  npm_binary: str = "npm"
  command_timeout_ms: int = 30000
  command_env: Dict[str, str] = Field(default_factory=dict)

  # Result cache
  cache_enabled: bool = True
  cache_max_entries: int = 1000
  cache_sweep_interval_seconds: int = 3600
  cache_coalesce_inflight: bool = False
  cache_ttl_seconds: Dict[str, int] = Field(
      default_factory=lambda: dict(DEFAULT_CACHE_TTL_SECONDS)
  )

  # Branch fallback, tried after the requested branch
  branch_candidates: List[str] = Field(
      default_factory=lambda: list(DEFAULT_BRANCH_CANDIDATES)
  )

  # Repository structure listing
  structure_item_limit: int = 200

  # CORS
  allowed_origins: List[AnyHttpUrl] = [
      "http://localhost:3000",
      "http://127.0.0.1:3000",
      "http://localhost:5173",
      "http://127.0.0.1:5173",
  ]

  model_config = SettingsConfigDict(
      env_file=".env",
      env_file_encoding="utf-8",
      env_prefix="CODESCOUT_",
  )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Return a cached Settings instance."""
  return Settings()
