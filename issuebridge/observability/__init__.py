"""Observability helpers."""

from issuebridge.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_dispatch,
    record_delivery,
    record_occurrence,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_dispatch",
    "record_delivery",
    "record_occurrence",
]
