"""Dispatch history API."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query, Request

from issuebridge.routers.events import get_pipeline

dispatches_router = APIRouter(prefix="/api/dispatches", tags=["dispatches"])


@dispatches_router.get("")
async def list_dispatches(request: Request, limit: int = Query(20, ge=1, le=200)):
    """List recent dispatch summaries, newest first."""
    dispatcher = get_pipeline(request).dispatcher
    items = await dispatcher.list_dispatches(limit=limit)
    return {"status": "ok", "count": len(items), "items": items}


@dispatches_router.get("/status")
async def get_dispatch_status(request: Request):
    dispatcher = get_pipeline(request).dispatcher
    return await dispatcher.get_observability_snapshot()


@dispatches_router.get("/{dispatch_id}")
async def get_dispatch(request: Request, dispatch_id: str):
    dispatcher = get_pipeline(request).dispatcher
    summary = await dispatcher.get_dispatch(dispatch_id)
    if not summary:
        raise HTTPException(status_code=404, detail=f"Dispatch {dispatch_id} not found")
    return summary
