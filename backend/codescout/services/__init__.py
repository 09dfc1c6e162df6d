# backend/codescout/services/__init__.py
from __future__ import annotations

"""
Service layer.

- tools: CLI gateway and per-CLI tool runners
- diagnostics: error classification
- cache: result memoization
- branches: branch fallback resolution
- container: wiring of the above for the API layer
"""
