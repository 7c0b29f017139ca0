"""PostgreSQL implementation of SubscriptionRepository."""
from __future__ import annotations

from datetime import datetime, timezone
import asyncpg


class PostgresSubscriptionRepository:
    """PostgreSQL-backed subscriptions."""

    def __init__(self, db: asyncpg.Connection):
        self.db = db

    async def create(self, installation_id: int, jira_host: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        row = await self.db.fetchrow(
            """
            INSERT INTO subscriptions (installation_id, jira_host, sync_status, created_at, updated_at)
            VALUES ($1, $2, 'PENDING', $3, $3)
            ON CONFLICT(installation_id, jira_host) DO UPDATE SET
                updated_at=EXCLUDED.updated_at
            RETURNING *
            """,
            installation_id, jira_host, now,
        )
        return dict(row) if row else {}

    async def get_by_id(self, subscription_id: int) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM subscriptions WHERE id = $1", subscription_id)
        return dict(row) if row else None

    async def list_for_host(self, jira_host: str) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM subscriptions WHERE jira_host = $1 ORDER BY id",
            jira_host,
        )
        return [dict(r) for r in rows]

    async def list_for_installation(self, installation_id: int) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM subscriptions WHERE installation_id = $1 ORDER BY id",
            installation_id,
        )
        return [dict(r) for r in rows]

    async def update_sync_status(self, subscription_id: int, status: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            "UPDATE subscriptions SET sync_status = $1, updated_at = $2 WHERE id = $3",
            status, now, subscription_id,
        )

    async def delete(self, subscription_id: int) -> None:
        await self.db.execute("DELETE FROM subscriptions WHERE id = $1", subscription_id)
