"""Exception types shared by the tracker, dispatcher and pipeline."""
from __future__ import annotations

import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

try:
    import asyncpg
except ImportError:
    asyncpg = None  # type: ignore


class IssueBridgeError(Exception):
    """Base class for issuebridge errors."""


class PersistenceError(IssueBridgeError):
    """The store was unreachable or rejected an operation.

    ``completed`` counts the units of a multi-row operation that were applied
    before the failure; they are not rolled back.
    """

    def __init__(self, message: str, *, operation: str = "", completed: int = 0):
        super().__init__(message)
        self.operation = operation
        self.completed = completed


class HandlerError(IssueBridgeError):
    """A destination handler raised while processing one subscription."""

    def __init__(self, subscription: Any, cause: BaseException):
        subscription_id = getattr(subscription, "id", None)
        super().__init__(f"Handler failed for subscription {subscription_id}: {cause}")
        self.subscription = subscription
        self.cause = cause

    @property
    def error_type(self) -> str:
        return type(self.cause).__name__


def _store_error_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [sqlite3.Error, OSError]
    if asyncpg is not None:
        types.extend([asyncpg.PostgresError, asyncpg.InterfaceError])
    return tuple(types)


STORE_ERRORS = _store_error_types()


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Re-raise driver-level failures inside the block as PersistenceError."""
    try:
        yield
    except STORE_ERRORS as exc:
        raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc
