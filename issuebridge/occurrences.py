"""Per-host Jira project popularity counters."""
from __future__ import annotations

import logging
from typing import Any

from issuebridge.db.factory import get_project_repository
from issuebridge.errors import PersistenceError, store_errors
from issuebridge.models import Project
from issuebridge.observability import record_occurrence

logger = logging.getLogger("issuebridge.occurrences")


class ProjectOccurrenceTracker:
    """Find-or-create project rows and bump their counters at the store.

    Never retries; callers own the retry policy.
    """

    def __init__(self, repository: Any):
        self.repository = repository

    @classmethod
    def from_db(cls, db: Any) -> "ProjectOccurrenceTracker":
        return cls(get_project_repository(db))

    async def record_occurrence(self, project_key: str, host: str) -> Project:
        key = (project_key or "").strip().upper()
        if not key:
            raise ValueError("project_key is required")
        try:
            async with store_errors("record_occurrence"):
                row = await self.repository.find_or_create(key, host)
                updated = await self.repository.increment(row["id"])
        except PersistenceError:
            record_occurrence("failed", host=host)
            raise
        if updated is None:
            record_occurrence("failed", host=host)
            raise PersistenceError(f"project {key} removed during increment", operation="record_occurrence")
        record_occurrence("success", host=host)
        return Project.from_row(updated)

    async def get_for_host(self, project_key: str, host: str) -> Project | None:
        async with store_errors("get_project"):
            row = await self.repository.get_for_host((project_key or "").upper(), host)
        return Project.from_row(row) if row else None

    async def list_for_host(self, host: str) -> list[Project]:
        async with store_errors("list_projects"):
            rows = await self.repository.list_for_host(host)
        return [Project.from_row(row) for row in rows]

    async def remove_all_for_host(self, host: str) -> int:
        """Delete every project row for ``host``, one row at a time.

        Rows deleted before a failure stay deleted; the raised
        PersistenceError carries how many there were.
        """
        async with store_errors("remove_all_projects"):
            rows = await self.repository.list_for_host(host)

        removed = 0
        for row in rows:
            try:
                async with store_errors("remove_project"):
                    await self.repository.delete(row["id"])
            except PersistenceError as exc:
                logger.error(
                    "Project purge for %s stopped after %d/%d rows: %s",
                    host, removed, len(rows), exc,
                )
                raise PersistenceError(str(exc), operation="remove_all_projects", completed=removed) from exc
            removed += 1

        logger.info("Removed %d projects for %s", removed, host)
        return removed
