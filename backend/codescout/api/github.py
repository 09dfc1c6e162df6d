# backend/codescout/api/github.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from codescout import schemas
from codescout.api.deps import get_services
from codescout.services.container import ServiceContainer

router = APIRouter(prefix="/github", tags=["github"])


@router.post("/code/search", response_model=schemas.ResultRead)
async def search_code(
    payload: schemas.CodeSearchQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.github.search_code(payload)
    return result.to_payload()


@router.post("/repos/search", response_model=schemas.ResultRead)
async def search_repositories(
    payload: schemas.RepoSearchQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.github.search_repositories(payload)
    return result.to_payload()


@router.post("/content", response_model=schemas.ResultRead)
async def fetch_content(
    payload: schemas.FileContentQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    """
    Fetch one file. When `branch` is given and missing, the conventional
    branch names are tried in order and the payload carries a fallback hint.
    """
    result = await services.github.fetch_content(payload)
    return result.to_payload()


@router.post("/structure", response_model=schemas.ResultRead)
async def view_repo_structure(
    payload: schemas.RepoStructureQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.github.view_repo_structure(payload)
    return result.to_payload()


@router.post("/commits/search", response_model=schemas.ResultRead)
async def search_commits(
    payload: schemas.CommitSearchQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.github.search_commits(payload)
    return result.to_payload()


@router.post("/issues/search", response_model=schemas.ResultRead)
async def search_issues(
    payload: schemas.IssueSearchQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.github.search_issues(payload)
    return result.to_payload()


@router.post("/pulls/search", response_model=schemas.ResultRead)
async def search_pull_requests(
    payload: schemas.PullRequestSearchQuery,
    services: ServiceContainer = Depends(get_services),
) -> dict:
    result = await services.github.search_pull_requests(payload)
    return result.to_payload()
