"""SQLite implementation of DeliveryRepository (last event per host)."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite


class SqliteDeliveryRepository:
    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def save_latest(self, jira_host: str, event_id: str | None, event_name: str, event_json: str) -> None:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO deliveries (jira_host, event_id, event_name, event_json, received_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(jira_host) DO UPDATE SET
                event_id=excluded.event_id, event_name=excluded.event_name,
                event_json=excluded.event_json, received_at=excluded.received_at
            """,
            (jira_host, event_id, event_name, event_json, now),
        )
        await self.db.commit()

    async def get_latest(self, jira_host: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM deliveries WHERE jira_host = ?", (jira_host,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def delete_for_host(self, jira_host: str) -> None:
        await self.db.execute("DELETE FROM deliveries WHERE jira_host = ?", (jira_host,))
        await self.db.commit()
