"""PostgreSQL implementation of ProjectRepository."""
from __future__ import annotations

from datetime import datetime, timezone
import asyncpg

from issuebridge.errors import PersistenceError


class PostgresProjectRepository:
    """PostgreSQL-backed project counters."""

    def __init__(self, db: asyncpg.Connection):
        self.db = db

    async def find_or_create(self, project_key: str, jira_host: str) -> dict:
        now = datetime.now(timezone.utc).isoformat()
        await self.db.execute(
            """
            INSERT INTO projects (project_key, jira_host, occurrences, created_at, updated_at)
            VALUES ($1, $2, 0, $3, $3)
            ON CONFLICT(project_key, jira_host) DO NOTHING
            """,
            project_key, jira_host, now,
        )
        row = await self.get_for_host(project_key, jira_host)
        if row is None:
            raise PersistenceError(f"project {project_key} vanished after insert", operation="find_or_create")
        return row

    async def increment(self, project_id: int, by: int = 1) -> dict | None:
        now = datetime.now(timezone.utc).isoformat()
        row = await self.db.fetchrow(
            """
            UPDATE projects SET occurrences = occurrences + $1, updated_at = $2
            WHERE id = $3
            RETURNING *
            """,
            by, now, project_id,
        )
        return dict(row) if row else None

    async def get_by_id(self, project_id: int) -> dict | None:
        row = await self.db.fetchrow("SELECT * FROM projects WHERE id = $1", project_id)
        return dict(row) if row else None

    async def get_for_host(self, project_key: str, jira_host: str) -> dict | None:
        row = await self.db.fetchrow(
            "SELECT * FROM projects WHERE project_key = $1 AND jira_host = $2",
            project_key, jira_host,
        )
        return dict(row) if row else None

    async def list_for_host(self, jira_host: str) -> list[dict]:
        rows = await self.db.fetch(
            "SELECT * FROM projects WHERE jira_host = $1 ORDER BY occurrences DESC, project_key",
            jira_host,
        )
        return [dict(r) for r in rows]

    async def delete(self, project_id: int) -> None:
        await self.db.execute("DELETE FROM projects WHERE id = $1", project_id)
