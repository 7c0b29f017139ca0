import asyncio
import sqlite3
import types
import unittest

import aiosqlite

from issuebridge.db.repositories.subscriptions import SqliteSubscriptionRepository
from issuebridge.db.sqlite_migrations import run_migrations
from issuebridge.dispatcher import SubscriptionDispatcher
from issuebridge.errors import HandlerError, PersistenceError
from issuebridge.jira_utils import JiraClient, JiraUtilities

HOST = "https://example.atlassian.net"


def _row(subscription_id: int, installation_id: int = 1234) -> dict:
    return {
        "id": subscription_id,
        "installation_id": installation_id,
        "jira_host": HOST,
        "sync_status": "ACTIVE",
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }


class _FakeSubscriptionRepository:
    def __init__(
        self,
        rows: list[dict],
        *,
        fail_load: bool = False,
        fail_status: bool = False,
        status_error: Exception | None = None,
    ) -> None:
        self.rows = rows
        self.fail_load = fail_load
        self.fail_status = fail_status
        self.status_error = status_error
        self.status_updates: list[tuple[int, str]] = []

    async def list_for_host(self, jira_host: str) -> list[dict]:
        if self.fail_load:
            raise sqlite3.OperationalError("no such table: subscriptions")
        return [r for r in self.rows if r["jira_host"] == jira_host]

    async def update_sync_status(self, subscription_id: int, status: str) -> None:
        if self.fail_status:
            raise sqlite3.OperationalError("database is locked")
        if self.status_error is not None:
            raise self.status_error
        self.status_updates.append((subscription_id, status))


def _event(event_id: str = "delivery-1"):
    return types.SimpleNamespace(id=event_id, name="push", host=HOST)


class SubscriptionDispatcherTests(unittest.IsolatedAsyncioTestCase):
    async def test_failure_for_one_subscription_does_not_stop_the_others(self) -> None:
        for mode in ("concurrent", "sequential"):
            with self.subTest(mode=mode):
                repo = _FakeSubscriptionRepository([_row(1), _row(2), _row(3)])
                dispatcher = SubscriptionDispatcher(repo, mode=mode)
                handler_calls: list[tuple] = []

                def handler(event, jira_client, util):
                    handler_calls.append((event, jira_client, util))
                    if len(handler_calls) == 1:
                        raise RuntimeError("boom")

                result = await dispatcher.dispatch(HOST, _event(), handler)

                self.assertEqual(len(handler_calls), 3)
                self.assertEqual(result.attempted, 3)
                self.assertEqual(result.succeeded, 2)
                self.assertEqual(result.failed, 1)
                subscription, error = result.failures[0]
                self.assertEqual(subscription.id, 1)
                self.assertIsInstance(error, HandlerError)
                self.assertIsInstance(error.cause, RuntimeError)
                self.assertEqual(result.summary()["failures"][0]["error"], "boom")

    async def test_no_subscriptions_is_a_noop(self) -> None:
        dispatcher = SubscriptionDispatcher(_FakeSubscriptionRepository([]))
        calls: list = []

        result = await dispatcher.dispatch(HOST, _event(), lambda *args: calls.append(args))

        self.assertEqual(calls, [])
        self.assertEqual(result.attempted, 0)
        self.assertEqual(result.succeeded, 0)
        self.assertEqual(result.failures, [])

    async def test_subscription_load_failure_propagates(self) -> None:
        dispatcher = SubscriptionDispatcher(_FakeSubscriptionRepository([_row(1)], fail_load=True))
        calls: list = []

        with self.assertRaises(PersistenceError):
            await dispatcher.dispatch(HOST, _event(), lambda *args: calls.append(args))
        self.assertEqual(calls, [])

    async def test_handler_receives_client_and_utilities_per_subscription(self) -> None:
        repo = _FakeSubscriptionRepository([_row(1, installation_id=10), _row(2, installation_id=20)])
        dispatcher = SubscriptionDispatcher(repo)
        seen: list[tuple] = []

        async def handler(event, jira_client, util):
            await asyncio.sleep(0)
            seen.append((jira_client, util))

        result = await dispatcher.dispatch(HOST, _event(), handler, issue_keys=["JRA-1", "TBD-2"])

        self.assertEqual(result.succeeded, 2)
        clients = sorted((c for c, _ in seen), key=lambda c: c.subscription_id)
        self.assertIsInstance(clients[0], JiraClient)
        self.assertEqual([c.installation_id for c in clients], [10, 20])
        self.assertEqual(clients[0].issue_url("JRA-1"), f"{HOST}/browse/JRA-1")
        util = seen[0][1]
        self.assertIsInstance(util, JiraUtilities)
        self.assertEqual(util.issue_keys, ["JRA-1", "TBD-2"])
        self.assertEqual(util.project_keys, ["JRA", "TBD"])
        self.assertIsNot(seen[0][1], seen[1][1])

    async def test_client_factory_failure_is_isolated(self) -> None:
        def client_factory(subscription):
            if subscription.id == 2:
                raise ValueError("no credentials")
            return object()

        repo = _FakeSubscriptionRepository([_row(1), _row(2), _row(3)])
        dispatcher = SubscriptionDispatcher(repo, client_factory=client_factory)
        calls: list = []

        result = await dispatcher.dispatch(HOST, _event(), lambda *args: calls.append(args))

        self.assertEqual(len(calls), 2)
        self.assertEqual([s.id for s, _ in result.failures], [2])

    async def test_async_failures_settle_before_returning(self) -> None:
        repo = _FakeSubscriptionRepository([_row(1), _row(2), _row(3)])
        dispatcher = SubscriptionDispatcher(repo, mode="concurrent")
        finished: list[int] = []

        async def handler(event, jira_client, util):
            if jira_client.subscription_id == 1:
                raise ConnectionError("rate limited")
            await asyncio.sleep(0.01)
            finished.append(jira_client.subscription_id)

        result = await dispatcher.dispatch(HOST, _event(), handler)

        self.assertEqual(sorted(finished), [2, 3])
        self.assertEqual(result.failed, 1)
        self.assertEqual(result.outcomes[0].errorType, "ConnectionError")

    async def test_max_concurrency_limits_in_flight_deliveries(self) -> None:
        repo = _FakeSubscriptionRepository([_row(i) for i in range(1, 6)])
        dispatcher = SubscriptionDispatcher(repo, mode="concurrent", max_concurrency=2)
        in_flight = 0
        peak = 0

        async def handler(event, jira_client, util):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1

        result = await dispatcher.dispatch(HOST, _event(), handler)

        self.assertEqual(result.succeeded, 5)
        self.assertLessEqual(peak, 2)

    async def test_sync_status_is_recorded_per_outcome(self) -> None:
        repo = _FakeSubscriptionRepository([_row(1), _row(2)])
        dispatcher = SubscriptionDispatcher(repo, mode="sequential")

        def handler(event, jira_client, util):
            if jira_client.subscription_id == 2:
                raise RuntimeError("unauthorized")

        result = await dispatcher.dispatch(HOST, _event(), handler)

        self.assertEqual(repo.status_updates, [(1, "COMPLETE"), (2, "FAILED")])
        self.assertEqual([o.subscription.syncStatus for o in result.outcomes], ["COMPLETE", "FAILED"])

    async def test_status_write_failure_does_not_change_outcome(self) -> None:
        repo = _FakeSubscriptionRepository([_row(1)], fail_status=True)
        dispatcher = SubscriptionDispatcher(repo)

        result = await dispatcher.dispatch(HOST, _event(), lambda *args: None)

        self.assertEqual(result.succeeded, 1)
        self.assertEqual(result.failures, [])

    async def test_non_store_status_error_does_not_change_outcomes(self) -> None:
        for mode in ("concurrent", "sequential"):
            with self.subTest(mode=mode):
                repo = _FakeSubscriptionRepository(
                    [_row(1), _row(2), _row(3)],
                    status_error=ValueError("no active connection"),
                )
                dispatcher = SubscriptionDispatcher(repo, mode=mode)
                handler_calls: list[int] = []

                def handler(event, jira_client, util):
                    handler_calls.append(jira_client.subscription_id)

                result = await dispatcher.dispatch(HOST, _event(), handler)

                self.assertEqual(sorted(handler_calls), [1, 2, 3])
                self.assertEqual(result.succeeded, 3)
                self.assertEqual(result.failed, 0)
                self.assertEqual([o.subscription.syncStatus for o in result.outcomes], ["ACTIVE"] * 3)

    async def test_repository_without_status_writes_still_delivers(self) -> None:
        class _ListOnlyRepository:
            async def list_for_host(self, jira_host: str) -> list[dict]:
                return [_row(1), _row(2)]

        for mode in ("concurrent", "sequential"):
            with self.subTest(mode=mode):
                dispatcher = SubscriptionDispatcher(_ListOnlyRepository(), mode=mode)

                result = await dispatcher.dispatch(HOST, _event(), lambda *args: None)

                self.assertEqual(result.attempted, 2)
                self.assertEqual(result.succeeded, 2)

    async def test_history_is_newest_first_and_bounded(self) -> None:
        dispatcher = SubscriptionDispatcher(_FakeSubscriptionRepository([_row(1)]), history_size=2)
        ids = []
        for n in range(3):
            result = await dispatcher.dispatch(HOST, _event(f"delivery-{n}"), lambda *args: None)
            ids.append(result.id)

        items = await dispatcher.list_dispatches(limit=10)
        self.assertEqual([item["id"] for item in items], [ids[2], ids[1]])
        self.assertIsNone(await dispatcher.get_dispatch(ids[0]))
        self.assertEqual((await dispatcher.get_dispatch(ids[2]))["eventId"], "delivery-2")
        snapshot = await dispatcher.get_observability_snapshot()
        self.assertEqual(snapshot["trackedDispatchCount"], 2)

    def test_unknown_mode_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            SubscriptionDispatcher(_FakeSubscriptionRepository([]), mode="parallel-ish")


class SubscriptionDispatcherSqliteTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.db = await aiosqlite.connect(":memory:")
        self.db.row_factory = aiosqlite.Row
        await run_migrations(self.db)
        self.repo = SqliteSubscriptionRepository(self.db)

    async def asyncTearDown(self) -> None:
        await self.db.close()

    async def test_dispatch_marks_rows_in_store(self) -> None:
        ok = await self.repo.create(1, HOST)
        bad = await self.repo.create(2, HOST)
        await self.repo.create(3, "https://other.atlassian.net")
        dispatcher = SubscriptionDispatcher.from_db(self.db, mode="sequential")

        def handler(event, jira_client, util):
            if jira_client.installation_id == 2:
                raise RuntimeError("boom")

        result = await dispatcher.dispatch(HOST, _event(), handler)

        self.assertEqual(result.attempted, 2)
        self.assertEqual((await self.repo.get_by_id(ok["id"]))["sync_status"], "COMPLETE")
        self.assertEqual((await self.repo.get_by_id(bad["id"]))["sync_status"], "FAILED")


if __name__ == "__main__":
    unittest.main()
