"""Query metrics: a recorder protocol, a no-op default and a Prometheus backend."""

from __future__ import annotations

import re
from typing import Any, Protocol

from bookstore.errors import (
    DecodeError,
    InvalidSpecError,
    MissingDependencyError,
    QueryTimeoutError,
    StoreConnectionError,
    StoreError,
)

_LABEL_NORMALIZER = re.compile(r"[^a-zA-Z0-9_]+")

# most specific first: StoreConnectionError is also a ConnectionError
_ERROR_KINDS: tuple[tuple[type[BaseException], str], ...] = (
    (QueryTimeoutError, "timeout"),
    (StoreConnectionError, "connection"),
    (InvalidSpecError, "invalid_spec"),
    (DecodeError, "decode"),
    (StoreError, "store"),
)

DURATION_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


def _import_prometheus_client() -> Any:
    try:
        import prometheus_client
    except ImportError as exc:  # pragma: no cover - depends on optional extras
        raise MissingDependencyError(
            "Prometheus metrics require 'prometheus-client'. "
            "Install with: pip install 'bookstore-queries[metrics]'"
        ) from exc
    return prometheus_client


def error_kind(exc: BaseException) -> str:
    """Short label for an error: ``timeout``, ``connection``, ``store``..."""
    for error_type, kind in _ERROR_KINDS:
        if isinstance(exc, error_type):
            return kind
    return "other"


def _label(value: str, *, default: str = "unknown") -> str:
    normalized = _LABEL_NORMALIZER.sub("_", value.strip().lower()).strip("_")
    return normalized or default


class MetricsRecorder(Protocol):
    """What the connection, executor and catalog report."""

    def observe_operation(
        self,
        *,
        collection: str,
        operation: str,
        duration_seconds: float,
        success: bool,
    ) -> None: ...

    def observe_error(self, *, collection: str, operation: str, kind: str) -> None: ...

    def observe_decode_failures(self, *, collection: str, count: int) -> None: ...


class NoopMetricsRecorder:
    """Default recorder; drops everything."""

    def observe_operation(
        self,
        *,
        collection: str,
        operation: str,
        duration_seconds: float,
        success: bool,
    ) -> None:
        del collection, operation, duration_seconds, success

    def observe_error(self, *, collection: str, operation: str, kind: str) -> None:
        del collection, operation, kind

    def observe_decode_failures(self, *, collection: str, count: int) -> None:
        del collection, count


class PrometheusMetricsRecorder:
    """Records into a Prometheus registry.

    Exposes ``<prefix>_query_duration_seconds`` and ``<prefix>_queries_total``
    labelled by collection, operation and status, ``<prefix>_query_errors_total``
    labelled by error kind, and ``<prefix>_decode_failures_total``. Creating
    a second recorder on the same registry reuses the registered collectors.
    """

    def __init__(self, *, registry: Any | None = None, prefix: str = "bookstore") -> None:
        prometheus_client = _import_prometheus_client()
        self._registry = prometheus_client.REGISTRY if registry is None else registry
        prefix = _label(prefix, default="bookstore")

        self._duration = self._collector(
            f"{prefix}_query_duration_seconds",
            lambda name: prometheus_client.Histogram(
                name,
                "Time spent in store calls.",
                labelnames=("collection", "operation", "status"),
                registry=self._registry,
                buckets=DURATION_BUCKETS,
            ),
        )
        self._queries = self._collector(
            f"{prefix}_queries_total",
            lambda name: prometheus_client.Counter(
                name,
                "Store calls by outcome.",
                labelnames=("collection", "operation", "status"),
                registry=self._registry,
            ),
        )
        self._errors = self._collector(
            f"{prefix}_query_errors_total",
            lambda name: prometheus_client.Counter(
                name,
                "Failed store calls by error kind.",
                labelnames=("collection", "operation", "kind"),
                registry=self._registry,
            ),
        )
        self._decode_failures = self._collector(
            f"{prefix}_decode_failures_total",
            lambda name: prometheus_client.Counter(
                name,
                "Stored documents that did not decode as books.",
                labelnames=("collection",),
                registry=self._registry,
            ),
        )

    def _collector(self, name: str, factory: Any) -> Any:
        existing = getattr(self._registry, "_names_to_collectors", {}).get(name)
        return existing if existing is not None else factory(name)

    def observe_operation(
        self,
        *,
        collection: str,
        operation: str,
        duration_seconds: float,
        success: bool,
    ) -> None:
        labels = {
            "collection": _label(collection),
            "operation": _label(operation),
            "status": "success" if success else "error",
        }
        self._duration.labels(**labels).observe(max(0.0, duration_seconds))
        self._queries.labels(**labels).inc()

    def observe_error(self, *, collection: str, operation: str, kind: str) -> None:
        self._errors.labels(
            collection=_label(collection), operation=_label(operation), kind=_label(kind)
        ).inc()

    def observe_decode_failures(self, *, collection: str, count: int) -> None:
        if count > 0:
            self._decode_failures.labels(collection=_label(collection)).inc(count)


_NOOP_RECORDER = NoopMetricsRecorder()
_DEFAULT_RECORDER: MetricsRecorder = _NOOP_RECORDER


def get_metrics_recorder() -> MetricsRecorder:
    return _DEFAULT_RECORDER


def set_metrics_recorder(recorder: MetricsRecorder | None) -> MetricsRecorder:
    """Install the process-wide recorder; ``None`` restores the no-op one."""
    global _DEFAULT_RECORDER
    _DEFAULT_RECORDER = _NOOP_RECORDER if recorder is None else recorder
    return _DEFAULT_RECORDER


def configure_prometheus_metrics(
    *,
    registry: Any | None = None,
    prefix: str = "bookstore",
    set_default: bool = True,
) -> PrometheusMetricsRecorder:
    recorder = PrometheusMetricsRecorder(registry=registry, prefix=prefix)
    if set_default:
        set_metrics_recorder(recorder)
    return recorder


def render_prometheus_metrics(*, registry: Any | None = None) -> bytes:
    """Current samples in the Prometheus text exposition format."""
    prometheus_client = _import_prometheus_client()
    return bytes(
        prometheus_client.generate_latest(
            prometheus_client.REGISTRY if registry is None else registry
        )
    )
