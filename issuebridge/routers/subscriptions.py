"""Subscription management and re-delivery API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, Request
from pydantic import BaseModel, Field

from issuebridge.db import connection
from issuebridge.db.factory import get_subscription_repository
from issuebridge.errors import PersistenceError, store_errors
from issuebridge.models import Subscription, SubscriptionCreate
from issuebridge.routers.events import get_destination_handler, get_pipeline

logger = logging.getLogger("issuebridge.subscriptions")

subscriptions_router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


class ResyncRequest(BaseModel):
    host: str = Field(..., min_length=1)
    background: bool = False


@subscriptions_router.get("", response_model=list[Subscription])
async def list_subscriptions(host: str = Query(..., min_length=1)):
    """List subscriptions registered for a Jira host."""
    db = await connection.get_connection()
    repo = get_subscription_repository(db)
    try:
        async with store_errors("list_subscriptions"):
            rows = await repo.list_for_host(host)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return [Subscription.from_row(row) for row in rows]


@subscriptions_router.post("", response_model=Subscription)
async def create_subscription(body: SubscriptionCreate):
    """Register an installation against a Jira host. Idempotent."""
    db = await connection.get_connection()
    repo = get_subscription_repository(db)
    try:
        async with store_errors("create_subscription"):
            row = await repo.create(body.installationId, body.jiraHost)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    logger.info("Subscription %s registered (installation=%s host=%s)", row.get("id"), body.installationId, body.jiraHost)
    return Subscription.from_row(row)


@subscriptions_router.delete("/{subscription_id}")
async def delete_subscription(subscription_id: int):
    """Disconnect one subscription."""
    db = await connection.get_connection()
    repo = get_subscription_repository(db)
    try:
        async with store_errors("delete_subscription"):
            existing = await repo.get_by_id(subscription_id)
            if not existing:
                raise HTTPException(status_code=404, detail=f"Subscription {subscription_id} not found")
            await repo.delete(subscription_id)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"status": "ok", "deleted": subscription_id}


async def _redeliver_in_background(pipeline, host: str, handler) -> None:
    try:
        result = await pipeline.redeliver(host, handler)
    except PersistenceError as e:
        logger.error("Background resync for %s failed: %s", host, e)
        return
    if result is None:
        logger.warning("Background resync for %s skipped: no stored event", host)


@subscriptions_router.post("/resync")
async def resync_host(request: Request, background_tasks: BackgroundTasks, body: ResyncRequest):
    """Re-run delivery of the host's last stored event to all its subscriptions."""
    pipeline = get_pipeline(request)
    handler = get_destination_handler(request)

    if body.background:
        background_tasks.add_task(_redeliver_in_background, pipeline, body.host, handler)
        return {"status": "ok", "mode": "background", "host": body.host}

    try:
        result = await pipeline.redeliver(body.host, handler)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail=f"No stored event to replay for {body.host}")
    return {"status": "ok", "mode": "foreground", "dispatch": result.summary()}
