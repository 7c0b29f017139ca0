"""Repository package for database access."""

from .subscriptions import SqliteSubscriptionRepository
from .projects import SqliteProjectRepository
from .deliveries import SqliteDeliveryRepository

__all__ = [
    "SqliteSubscriptionRepository",
    "SqliteProjectRepository",
    "SqliteDeliveryRepository",
]
