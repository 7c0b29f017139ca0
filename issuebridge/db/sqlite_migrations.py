"""Database schema creation and versioning.

All CREATE TABLE statements for subscriptions, projects and stored deliveries.
Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("issuebridge.db")

SCHEMA_VERSION = 2

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── 1. Subscriptions (installation -> Jira host) ───────────────────
CREATE TABLE IF NOT EXISTS subscriptions (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    installation_id  INTEGER NOT NULL,
    jira_host        TEXT NOT NULL,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_subscriptions_unique ON subscriptions(installation_id, jira_host);
CREATE INDEX IF NOT EXISTS idx_subscriptions_host ON subscriptions(jira_host);

-- ── 2. Projects (popularity per Jira host) ─────────────────────────
CREATE TABLE IF NOT EXISTS projects (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    project_key  TEXT NOT NULL,
    jira_host    TEXT NOT NULL,
    occurrences  INTEGER NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_projects_unique ON projects(project_key, jira_host);

-- ── 3. Last delivery per host (replay source) ──────────────────────
CREATE TABLE IF NOT EXISTS deliveries (
    jira_host    TEXT PRIMARY KEY,
    event_id     TEXT,
    event_name   TEXT DEFAULT '',
    event_json   TEXT NOT NULL,
    received_at  TEXT NOT NULL
);
"""


async def _column_exists(db: aiosqlite.Connection, table: str, column: str) -> bool:
    async with db.execute(f"PRAGMA table_info({table})") as cur:
        rows = await cur.fetchall()
    return any(row[1] == column for row in rows)


async def _ensure_column(db: aiosqlite.Connection, table: str, column: str, definition: str) -> None:
    if await _column_exists(db, table, column):
        return
    await db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.Error:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current_version})")
        return

    logger.info(f"Running migrations: {current_version} → {SCHEMA_VERSION}")

    await db.executescript(_TABLES)

    # v2: delivery status on subscriptions, touch time on projects.
    await _ensure_column(db, "subscriptions", "sync_status", "TEXT DEFAULT 'PENDING'")
    await _ensure_column(db, "projects", "updated_at", "TEXT DEFAULT ''")

    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
