"""Repository factory to abstract DB backend (SQLite vs Postgres)."""
from __future__ import annotations

from typing import Any
import aiosqlite

from issuebridge.db.repositories.subscriptions import SqliteSubscriptionRepository
from issuebridge.db.repositories.projects import SqliteProjectRepository
from issuebridge.db.repositories.deliveries import SqliteDeliveryRepository


def get_subscription_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteSubscriptionRepository(db)
    from issuebridge.db.repositories.postgres.subscriptions import PostgresSubscriptionRepository
    return PostgresSubscriptionRepository(db)


def get_project_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteProjectRepository(db)
    from issuebridge.db.repositories.postgres.projects import PostgresProjectRepository
    return PostgresProjectRepository(db)


def get_delivery_repository(db: Any):
    if isinstance(db, aiosqlite.Connection):
        return SqliteDeliveryRepository(db)
    from issuebridge.db.repositories.postgres.deliveries import PostgresDeliveryRepository
    return PostgresDeliveryRepository(db)
