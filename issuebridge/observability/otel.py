"""OpenTelemetry + Prometheus fallback wiring for issuebridge."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from issuebridge import config

logger = logging.getLogger("issuebridge.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None
_fastapi_instrumentor: Any | None = None

_dispatch_counter: Any | None = None
_delivery_counter: Any | None = None
_delivery_latency_hist: Any | None = None
_occurrence_counter: Any | None = None

_prom_enabled = False
_prom_dispatch_counter: Any | None = None
_prom_delivery_counter: Any | None = None
_prom_delivery_latency_hist: Any | None = None
_prom_occurrence_counter: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _prom_labels(*, host: str, **extra: str) -> dict[str, str]:
    labels = {"host": host or "unknown"}
    for key, value in extra.items():
        labels[key] = (value or "").strip() or "unknown"
    return labels


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider, _fastapi_instrumentor
    global _dispatch_counter, _delivery_counter, _delivery_latency_hist, _occurrence_counter
    global _prom_enabled
    global _prom_dispatch_counter, _prom_delivery_counter, _prom_delivery_latency_hist, _prom_occurrence_counter

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (ISSUEBRIDGE_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "issuebridge"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "issuebridge",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_exporter = OTLPSpanExporter(endpoint=traces_endpoint or None)
    trace_provider.add_span_processor(BatchSpanProcessor(trace_exporter))
    trace.set_tracer_provider(trace_provider)
    tracer = trace.get_tracer("issuebridge")

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("issuebridge")

    _dispatch_counter = meter.create_counter(
        "issuebridge_dispatches_total",
        unit="1",
        description="Dispatch runs by aggregate outcome",
    )
    _delivery_counter = meter.create_counter(
        "issuebridge_deliveries_total",
        unit="1",
        description="Per-subscription delivery outcomes",
    )
    _delivery_latency_hist = meter.create_histogram(
        "issuebridge_delivery_latency_ms",
        unit="ms",
        description="Destination handler latency per subscription",
    )
    _occurrence_counter = meter.create_counter(
        "issuebridge_project_occurrences_total",
        unit="1",
        description="Project occurrence increments",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = tracer
    _fastapi_instrumentor = FastAPIInstrumentor()
    _enabled = True

    if app:
        _fastapi_instrumentor.instrument_app(app)

    if config.PROM_PORT > 0:
        try:
            from prometheus_client import Counter, Histogram, start_http_server

            start_http_server(config.PROM_PORT)
            _prom_enabled = True
            _prom_dispatch_counter = Counter(
                "issuebridge_dispatches_total",
                "Dispatch runs by aggregate outcome",
                ["result", "host"],
            )
            _prom_delivery_counter = Counter(
                "issuebridge_deliveries_total",
                "Per-subscription delivery outcomes",
                ["result", "error_type", "host"],
            )
            _prom_delivery_latency_hist = Histogram(
                "issuebridge_delivery_latency_ms",
                "Destination handler latency per subscription",
                ["result", "host"],
            )
            _prom_occurrence_counter = Counter(
                "issuebridge_project_occurrences_total",
                "Project occurrence increments",
                ["result", "host"],
            )
            logger.info("Prometheus fallback metrics server listening on port %s", config.PROM_PORT)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prometheus fallback not started: %s", exc)
            _prom_enabled = False

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception as exc:  # noqa: BLE001
        logger.debug("FastAPI uninstrument failed: %s", exc)
    try:
        if _meter_provider is not None:
            _meter_provider.shutdown()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Meter provider shutdown failed: %s", exc)
    try:
        if _trace_provider is not None:
            _trace_provider.shutdown()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Trace provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_dispatch(*, host: str, attempted: int, succeeded: int) -> None:
    if attempted == 0:
        result = "empty"
    elif succeeded == attempted:
        result = "success"
    elif succeeded == 0:
        result = "failed"
    else:
        result = "partial"
    labels = {"result": result, "host": host or "unknown"}
    if _enabled and _dispatch_counter is not None:
        _dispatch_counter.add(1, labels)
    if _prom_enabled and _prom_dispatch_counter is not None:
        _prom_dispatch_counter.labels(**_prom_labels(host=host, result=result)).inc()


def record_delivery(result: str, duration_ms: float, *, host: str, error_type: str = "") -> None:
    labels = {
        "result": result or "unknown",
        "error_type": error_type or "none",
        "host": host or "unknown",
    }
    if _enabled and _delivery_counter is not None:
        _delivery_counter.add(1, labels)
    if _enabled and _delivery_latency_hist is not None:
        _delivery_latency_hist.record(max(0.0, float(duration_ms)), {"result": labels["result"], "host": labels["host"]})
    if _prom_enabled and _prom_delivery_counter is not None:
        prom = _prom_labels(host=host, result=result, error_type=error_type or "none")
        _prom_delivery_counter.labels(**prom).inc()
    if _prom_enabled and _prom_delivery_latency_hist is not None:
        prom = _prom_labels(host=host, result=result)
        _prom_delivery_latency_hist.labels(**prom).observe(max(0.0, float(duration_ms)))


def record_occurrence(result: str, *, host: str) -> None:
    labels = {"result": result or "unknown", "host": host or "unknown"}
    if _enabled and _occurrence_counter is not None:
        _occurrence_counter.add(1, labels)
    if _prom_enabled and _prom_occurrence_counter is not None:
        _prom_occurrence_counter.labels(**_prom_labels(host=host, result=result)).inc()
