# backend/codescout/config/__init__.py
from __future__ import annotations

"""
Shortcut imports for configuration.
"""

from .log_setup import configure_logging  # noqa: F401
from .settings import Settings, get_settings  # noqa: F401
