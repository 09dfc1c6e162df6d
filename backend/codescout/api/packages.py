# backend/codescout/api/packages.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from codescout import schemas
from codescout.api.deps import get_services
from codescout.services.container import ServiceContainer

router = APIRouter(prefix="/packages", tags=["packages"])


@router.post("/search", response_model=schemas.ResultRead)
async def search_packages(
    payload: schemas.PackageSearchQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.npm.search_packages(payload)
    return result.to_payload()


@router.post("/view", response_model=schemas.ResultRead)
async def view_package(
    payload: schemas.PackageViewQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.npm.view_package(payload)
    return result.to_payload()
