# backend/codescout/api/cache.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from codescout import schemas
from codescout.api.deps import get_services
from codescout.services.container import ServiceContainer

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats", response_model=schemas.CacheStatsRead)
def cache_stats(services: ServiceContainer = Depends(get_services)) -> dict:
    return services.cache.stats().to_dict()


@router.delete("")
def flush_cache(services: ServiceContainer = Depends(get_services)) -> dict:
    services.cache.clear_all()
    return {"status": "flushed"}
