"""SQLite implementation of SubscriptionRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite


class SqliteSubscriptionRepository:
    """Installation → Jira host subscriptions."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create(self, installation_id: int, jira_host: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO subscriptions (installation_id, jira_host, sync_status, created_at, updated_at)
            VALUES (?, ?, 'PENDING', ?, ?)
            ON CONFLICT(installation_id, jira_host) DO UPDATE SET
                updated_at=excluded.updated_at
            """,
            (installation_id, jira_host, now, now),
        )
        await self.db.commit()
        async with self.db.execute(
            "SELECT * FROM subscriptions WHERE installation_id = ? AND jira_host = ?",
            (installation_id, jira_host),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else {}

    async def get_by_id(self, subscription_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM subscriptions WHERE id = ?", (subscription_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_for_host(self, jira_host: str) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM subscriptions WHERE jira_host = ? ORDER BY id",
            (jira_host,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def list_for_installation(self, installation_id: int) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM subscriptions WHERE installation_id = ? ORDER BY id",
            (installation_id,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def update_sync_status(self, subscription_id: int, status: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            "UPDATE subscriptions SET sync_status = ?, updated_at = ? WHERE id = ?",
            (status, now, subscription_id),
        )
        await self.db.commit()

    async def delete(self, subscription_id: int) -> None:
        await self.db.execute("DELETE FROM subscriptions WHERE id = ?", (subscription_id,))
        await self.db.commit()
