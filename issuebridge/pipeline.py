"""Inbound event pipeline: extract issue keys, count projects, fan out."""
from __future__ import annotations

import logging
from typing import Any

from issuebridge import config
from issuebridge.db.factory import get_delivery_repository
from issuebridge.dispatcher import DestinationHandler, SubscriptionDispatcher
from issuebridge.errors import PersistenceError, store_errors
from issuebridge.issue_keys import extract_from_texts, extract_project_keys
from issuebridge.models import DispatchResult, InboundEvent
from issuebridge.occurrences import ProjectOccurrenceTracker

logger = logging.getLogger("issuebridge.pipeline")


def log_only_handler(event: InboundEvent, client: Any, utilities: Any) -> None:
    """Fallback destination handler used when the application registers none."""
    logger.info(
        "[%s] %s event for %s references %s",
        getattr(client, "subscription_id", "?"),
        event.name,
        event.host,
        ", ".join(getattr(utilities, "issue_keys", [])) or "no issues",
    )


class EventPipeline:
    def __init__(
        self,
        dispatcher: SubscriptionDispatcher,
        tracker: ProjectOccurrenceTracker,
        deliveries: Any | None = None,
        default_handler: DestinationHandler = log_only_handler,
    ):
        self.dispatcher = dispatcher
        self.tracker = tracker
        self.deliveries = deliveries
        self.default_handler = default_handler

    @classmethod
    def from_db(cls, db: Any, **kwargs: Any) -> "EventPipeline":
        deliveries = get_delivery_repository(db) if config.STORE_DELIVERIES else None
        return cls(
            SubscriptionDispatcher.from_db(db),
            ProjectOccurrenceTracker.from_db(db),
            deliveries=deliveries,
            **kwargs,
        )

    async def handle(
        self,
        event: InboundEvent,
        handler: DestinationHandler | None = None,
        *,
        track_occurrences: bool = True,
        trigger: str = "event",
    ) -> DispatchResult:
        """Run one event through extraction, project counting and dispatch.

        Counting failures are recorded on the result and never block
        delivery. Raises only when the host's subscriptions cannot be loaded.
        """
        issue_keys = extract_from_texts(*event.texts())
        occurrence_errors: list[str] = []
        if track_occurrences:
            occurrence_errors = await self._track(extract_project_keys(issue_keys), event.host)

        await self._store(event)

        result = await self.dispatcher.dispatch(
            event.host,
            event,
            handler or self.default_handler,
            issue_keys=issue_keys,
            trigger=trigger,
        )
        result.occurrenceErrors.extend(occurrence_errors)
        return result

    async def redeliver(self, host: str, handler: DestinationHandler | None = None) -> DispatchResult | None:
        """Replay the last stored event for ``host`` without re-counting projects."""
        if self.deliveries is None:
            return None
        async with store_errors("load_delivery"):
            row = await self.deliveries.get_latest(host)
        if not row:
            logger.info("No stored delivery to replay for %s", host)
            return None
        event = InboundEvent.model_validate_json(row["event_json"])
        logger.info("Replaying event %s (%s) for %s", event.id, event.name, host)
        return await self.handle(event, handler, track_occurrences=False, trigger="resync")

    async def purge_host(self, host: str) -> int:
        """Forget a host on uninstall: its project counters, then its stored event.

        Returns the number of project rows removed.
        """
        removed = await self.tracker.remove_all_for_host(host)
        if self.deliveries is not None:
            try:
                async with store_errors("remove_delivery"):
                    await self.deliveries.delete_for_host(host)
            except PersistenceError as exc:
                raise PersistenceError(str(exc), operation="purge_host", completed=removed) from exc
        logger.info("Purged %s: %d projects and its stored event", host, removed)
        return removed

    async def _track(self, project_keys: list[str], host: str) -> list[str]:
        errors: list[str] = []
        for project_key in project_keys:
            try:
                await self.tracker.record_occurrence(project_key, host)
            except PersistenceError as exc:
                logger.warning("Occurrence of %s on %s not recorded: %s", project_key, host, exc)
                errors.append(f"{project_key}: {exc}")
        return errors

    async def _store(self, event: InboundEvent) -> None:
        if self.deliveries is None:
            return
        try:
            async with store_errors("store_delivery"):
                await self.deliveries.save_latest(event.host, event.id, event.name, event.model_dump_json())
        except PersistenceError as exc:
            logger.warning("Event %s for %s not stored for replay: %s", event.id, event.host, exc)
