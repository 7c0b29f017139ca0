"""PostgreSQL schema creation. Mirrors sqlite_migrations."""
from __future__ import annotations

import logging

import asyncpg

logger = logging.getLogger("issuebridge.db")

SCHEMA_VERSION = 2

_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id               BIGSERIAL PRIMARY KEY,
    installation_id  BIGINT NOT NULL,
    jira_host        TEXT NOT NULL,
    sync_status      TEXT DEFAULT 'PENDING',
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_subscriptions_unique ON subscriptions(installation_id, jira_host);
CREATE INDEX IF NOT EXISTS idx_subscriptions_host ON subscriptions(jira_host);

CREATE TABLE IF NOT EXISTS projects (
    id           BIGSERIAL PRIMARY KEY,
    project_key  TEXT NOT NULL,
    jira_host    TEXT NOT NULL,
    occurrences  BIGINT NOT NULL DEFAULT 0,
    created_at   TEXT NOT NULL,
    updated_at   TEXT DEFAULT ''
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_projects_unique ON projects(project_key, jira_host);

CREATE TABLE IF NOT EXISTS deliveries (
    jira_host    TEXT PRIMARY KEY,
    event_id     TEXT,
    event_name   TEXT DEFAULT '',
    event_json   TEXT NOT NULL,
    received_at  TEXT NOT NULL
);
"""


async def run_migrations(db: asyncpg.Pool) -> None:
    """Create all tables. Idempotent."""
    async with db.acquire() as conn:
        async with conn.transaction():
            await conn.execute(_TABLES)
            current_version = await conn.fetchval("SELECT MAX(version) FROM schema_version") or 0
            if current_version >= SCHEMA_VERSION:
                logger.info(f"Schema is up to date (version {current_version})")
                return
            await conn.execute("INSERT INTO schema_version (version) VALUES ($1)", SCHEMA_VERSION)
    logger.info(f"Migrations complete, schema version {SCHEMA_VERSION}")
