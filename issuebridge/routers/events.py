"""Inbound event ingestion API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request

from issuebridge.errors import PersistenceError
from issuebridge.models import InboundEvent
from issuebridge.pipeline import EventPipeline

logger = logging.getLogger("issuebridge.events")

events_router = APIRouter(prefix="/api/events", tags=["events"])


def get_pipeline(request: Request) -> EventPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if not pipeline:
        raise HTTPException(status_code=503, detail="Event pipeline not initialized")
    return pipeline


def get_destination_handler(request: Request):
    return getattr(request.app.state, "destination_handler", None)


@events_router.post("")
async def ingest_event(request: Request, event: InboundEvent):
    """Extract issue keys, count projects and deliver to every subscription."""
    pipeline = get_pipeline(request)
    try:
        result = await pipeline.handle(event, get_destination_handler(request))
    except PersistenceError as e:
        logger.error("Event %s for %s not dispatched: %s", event.id, event.host, e)
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "ok" if not result.failed else "partial", "dispatch": result.summary()}
