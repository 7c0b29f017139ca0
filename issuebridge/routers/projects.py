"""API router for Jira project popularity."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from issuebridge.errors import PersistenceError
from issuebridge.models import Project
from issuebridge.routers.events import get_pipeline

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


@projects_router.get("", response_model=list[Project])
async def list_projects(request: Request, host: str = Query(..., min_length=1)):
    """Projects seen for a Jira host, most referenced first."""
    tracker = get_pipeline(request).tracker
    try:
        return await tracker.list_for_host(host)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))


@projects_router.delete("")
async def remove_projects(request: Request, host: str = Query(..., min_length=1)):
    """Purge every project row and the stored replay event for a host (uninstall)."""
    pipeline = get_pipeline(request)
    try:
        removed = await pipeline.purge_host(host)
    except PersistenceError as e:
        raise HTTPException(
            status_code=503,
            detail={"message": str(e), "removed": e.completed},
        )
    return {"status": "ok", "host": host, "removed": removed}
