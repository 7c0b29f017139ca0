"""Fan an event out to every subscription of a Jira host.

Each subscription is delivered in its own failure domain: a handler that
raises is recorded against its subscription and the remaining deliveries go
ahead. Only a failure to load the subscription list aborts a dispatch.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from issuebridge import config
from issuebridge.db.factory import get_subscription_repository
from issuebridge.errors import HandlerError, store_errors
from issuebridge.jira_utils import JiraUtilities, build_jira_client
from issuebridge.models import DeliveryOutcome, DispatchResult, Subscription
from issuebridge.observability import record_delivery, record_dispatch, start_span

logger = logging.getLogger("issuebridge.dispatch")

# (event, destination client, utilities) -> None or awaitable
DestinationHandler = Callable[[Any, Any, Any], Any]

DISPATCH_MODES = ("concurrent", "sequential")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_utility_factory(subscription: Subscription, issue_keys: Iterable[str]) -> JiraUtilities:
    return JiraUtilities(jira_host=subscription.jiraHost, issue_keys=list(issue_keys))


class SubscriptionDispatcher:
    """Invoke a destination handler once per subscription of a host."""

    def __init__(
        self,
        repository: Any,
        *,
        client_factory: Callable[[Subscription], Any] = build_jira_client,
        utility_factory: Callable[[Subscription, Iterable[str]], Any] = default_utility_factory,
        mode: str | None = None,
        max_concurrency: int | None = None,
        history_size: int | None = None,
    ):
        self.repository = repository
        self.client_factory = client_factory
        self.utility_factory = utility_factory
        self.mode = (mode or config.DISPATCH_MODE).strip().lower()
        if self.mode not in DISPATCH_MODES:
            raise ValueError(f"Unknown dispatch mode {self.mode!r}; expected one of {DISPATCH_MODES}")
        limit = config.DISPATCH_MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        self._semaphore = asyncio.Semaphore(limit) if limit and limit > 0 else None
        self._max_history = max(1, history_size if history_size is not None else config.DISPATCH_HISTORY)
        self._results: dict[str, DispatchResult] = {}
        self._result_order: list[str] = []
        self._history_lock = asyncio.Lock()

    @classmethod
    def from_db(cls, db: Any, **kwargs: Any) -> "SubscriptionDispatcher":
        return cls(get_subscription_repository(db), **kwargs)

    async def load_subscriptions(self, host: str) -> list[Subscription]:
        async with store_errors("load_subscriptions"):
            rows = await self.repository.list_for_host(host)
        return [Subscription.from_row(row) for row in rows]

    async def dispatch(
        self,
        host: str,
        event: Any,
        handler: DestinationHandler,
        *,
        issue_keys: Iterable[str] = (),
        trigger: str = "event",
    ) -> DispatchResult:
        """Deliver ``event`` to every subscription of ``host``.

        Raises PersistenceError only when the subscription list cannot be
        loaded. Handler failures are returned in the result, never raised.
        """
        started = time.monotonic()
        keys = list(issue_keys)
        result = DispatchResult(
            id=f"DSP-{uuid.uuid4()}",
            host=host,
            eventId=getattr(event, "id", None),
            trigger=trigger,
            issueKeys=keys,
            startedAt=_now(),
        )

        with start_span("issuebridge.dispatch", {"host": host, "trigger": trigger}):
            subscriptions = await self.load_subscriptions(host)
            if not subscriptions:
                logger.debug("No subscriptions for %s; nothing to dispatch", host)
            elif self.mode == "sequential":
                for subscription in subscriptions:
                    result.outcomes.append(await self._deliver(subscription, event, handler, keys))
            else:
                result.outcomes.extend(await self._deliver_concurrently(subscriptions, event, handler, keys))

        result.finishedAt = _now()
        result.durationMs = int((time.monotonic() - started) * 1000)
        record_dispatch(host=host, attempted=result.attempted, succeeded=result.succeeded)
        self._log_summary(result)
        await self._remember(result)
        return result

    async def _deliver_concurrently(
        self,
        subscriptions: list[Subscription],
        event: Any,
        handler: DestinationHandler,
        issue_keys: list[str],
    ) -> list[DeliveryOutcome]:
        settled = await asyncio.gather(
            *(self._guarded_deliver(s, event, handler, issue_keys) for s in subscriptions),
            return_exceptions=True,
        )
        outcomes: list[DeliveryOutcome] = []
        escaped: BaseException | None = None
        for subscription, item in zip(subscriptions, settled):
            if isinstance(item, DeliveryOutcome):
                outcomes.append(item)
            elif isinstance(item, Exception):
                outcomes.append(self._failed_outcome(subscription, item, 0.0))
            elif escaped is None:
                escaped = item
        # Cancellation and interpreter exits are not delivery failures.
        if escaped is not None:
            raise escaped
        return outcomes

    async def _guarded_deliver(
        self,
        subscription: Subscription,
        event: Any,
        handler: DestinationHandler,
        issue_keys: list[str],
    ) -> DeliveryOutcome:
        if self._semaphore is None:
            return await self._deliver(subscription, event, handler, issue_keys)
        async with self._semaphore:
            return await self._deliver(subscription, event, handler, issue_keys)

    async def _deliver(
        self,
        subscription: Subscription,
        event: Any,
        handler: DestinationHandler,
        issue_keys: list[str],
    ) -> DeliveryOutcome:
        started = time.monotonic()
        try:
            client = self.client_factory(subscription)
            utilities = self.utility_factory(subscription, issue_keys)
            pending = handler(event, client, utilities)
            if inspect.isawaitable(pending):
                await pending
        except Exception as exc:
            outcome = self._failed_outcome(subscription, exc, (time.monotonic() - started) * 1000)
        else:
            duration_ms = (time.monotonic() - started) * 1000
            outcome = DeliveryOutcome(subscription=subscription, status="success", durationMs=int(duration_ms))
            record_delivery("success", duration_ms, host=subscription.jiraHost)

        await self._mark_status(subscription, "COMPLETE" if outcome.ok else "FAILED")
        return outcome

    def _failed_outcome(self, subscription: Subscription, exc: Exception, duration_ms: float) -> DeliveryOutcome:
        error = HandlerError(subscription, exc)
        logger.error(
            "Delivery failed for subscription %s (installation=%s host=%s): %s",
            subscription.id,
            subscription.installationId,
            subscription.jiraHost,
            exc,
            exc_info=exc,
        )
        record_delivery("failed", duration_ms, host=subscription.jiraHost, error_type=error.error_type)
        return DeliveryOutcome(
            subscription=subscription,
            status="failed",
            error=str(exc),
            errorType=error.error_type,
            durationMs=int(duration_ms),
            exception=error,
        )

    async def _mark_status(self, subscription: Subscription, status: str) -> None:
        try:
            async with store_errors("update_sync_status"):
                await self.repository.update_sync_status(subscription.id, status)
        except Exception as exc:
            # The delivery outcome stands whatever happens to the status write.
            logger.warning("Could not mark subscription %s as %s: %s", subscription.id, status, exc)
            return
        subscription.syncStatus = status

    def _log_summary(self, result: DispatchResult) -> None:
        if result.failed:
            logger.warning(
                "Dispatch %s for %s: %d attempted, %d succeeded, %d failed (subscriptions %s)",
                result.id,
                result.host,
                result.attempted,
                result.succeeded,
                result.failed,
                ", ".join(str(s.id) for s, _ in result.failures),
            )
        else:
            logger.info(
                "Dispatch %s for %s: %d attempted, %d succeeded",
                result.id,
                result.host,
                result.attempted,
                result.succeeded,
            )

    # ── History ─────────────────────────────────────────────────────

    async def _remember(self, result: DispatchResult) -> None:
        async with self._history_lock:
            self._results[result.id] = result
            self._result_order.insert(0, result.id)
            if len(self._result_order) > self._max_history:
                for stale_id in self._result_order[self._max_history:]:
                    self._results.pop(stale_id, None)
                self._result_order = self._result_order[: self._max_history]

    async def list_dispatches(self, limit: int = 20) -> list[dict[str, Any]]:
        """Latest dispatch summaries, newest first."""
        async with self._history_lock:
            ids = self._result_order[: max(1, limit)]
            return [self._results[i].summary() for i in ids if i in self._results]

    async def get_dispatch(self, dispatch_id: str) -> dict[str, Any] | None:
        async with self._history_lock:
            result = self._results.get(dispatch_id)
            return result.summary() if result else None

    async def get_observability_snapshot(self) -> dict[str, Any]:
        async with self._history_lock:
            recent = [self._results[i] for i in self._result_order if i in self._results]
            return {
                "mode": self.mode,
                "trackedDispatchCount": len(recent),
                "failedDispatchCount": sum(1 for r in recent if r.failed),
                "recentDispatches": [r.summary() for r in recent[:5]],
            }
