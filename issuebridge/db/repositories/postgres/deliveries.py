"""PostgreSQL implementation of DeliveryRepository."""
from __future__ import annotations

from datetime import datetime, timezone
import asyncpg


class PostgresDeliveryRepository:
    def __init__(self, db: asyncpg.Connection):
        self.db = db

    async def save_latest(self, jira_host: str, event_id: str | None, event_name: str, event_json: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """
            INSERT INTO deliveries (jira_host, event_id, event_name, event_json, received_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT(jira_host) DO UPDATE SET
                event_id=EXCLUDED.event_id, event_name=EXCLUDED.event_name,
                event_json=EXCLUDED.event_json, received_at=EXCLUDED.received_at
            """,
            jira_host, event_id, event_name, event_json, now,
        )

    async def get_latest(self, jira_host: str) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM deliveries WHERE jira_host = $1", jira_host)
        return dict(row) if row else None

    async def delete_for_host(self, jira_host: str) -> None:
        await self.db.execute("DELETE FROM deliveries WHERE jira_host = $1", jira_host)
