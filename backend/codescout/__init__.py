# backend/codescout/__init__.py
from __future__ import annotations

"""
Marks `codescout` as a Python package.

Routers live in codescout/api, services in codescout/services, etc.
"""
