# backend/codescout/api/deps.py
from __future__ import annotations

from fastapi import Request

from codescout.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    """Return the container built at application startup."""
    return request.app.state.services
