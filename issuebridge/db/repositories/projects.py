"""SQLite implementation of ProjectRepository."""
from __future__ import annotations

from datetime import datetime, timezone

import aiosqlite

from issuebridge.errors import PersistenceError


class SqliteProjectRepository:
    """Per-host Jira project rows with occurrence counters."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def find_or_create(self, project_key: str, jira_host: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """INSERT INTO projects (project_key, jira_host, occurrences, created_at, updated_at)
            VALUES (?, ?, 0, ?, ?)
            ON CONFLICT(project_key, jira_host) DO NOTHING
            """,
            (project_key, jira_host, now, now),
        )
        await self.db.commit()
        row = await self.get_for_host(project_key, jira_host)
        if row is None:
            raise PersistenceError(f"project {project_key} vanished after insert", operation="find_or_create")
        return row

    async def increment(self, project_id: int, by: int = 1) -> dict | None:
        """Bump the counter in a single UPDATE so concurrent calls never lose a count."""
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            "UPDATE projects SET occurrences = occurrences + ?, updated_at = ? WHERE id = ?",
            (by, now, project_id),
        )
        await self.db.commit()
        return await self.get_by_id(project_id)

    async def get_by_id(self, project_id: int) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM projects WHERE id = ?", (project_id,)
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def get_for_host(self, project_key: str, jira_host: str) -> dict | None:
        async with self.db.execute(
            "SELECT * FROM projects WHERE project_key = ? AND jira_host = ?",
            (project_key, jira_host),
        ) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    async def list_for_host(self, jira_host: str) -> list[dict]:
        async with self.db.execute(
            "SELECT * FROM projects WHERE jira_host = ? ORDER BY occurrences DESC, project_key",
            (jira_host,),
        ) as cur:
            return [dict(r) for r in await cur.fetchall()]

    async def delete(self, project_id: int) -> None:
        await self.db.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        await self.db.commit()
