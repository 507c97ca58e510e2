"""Logging and metrics helpers."""

from bookstore.observability._observable import ObservableMixin
from bookstore.observability.logging import (
    JsonFormatter,
    TextFormatter,
    bootstrap_logging,
    bootstrap_logging_from_settings,
)
from bookstore.observability.metrics import (
    MetricsRecorder,
    NoopMetricsRecorder,
    PrometheusMetricsRecorder,
    configure_prometheus_metrics,
    get_metrics_recorder,
    render_prometheus_metrics,
    set_metrics_recorder,
)

__all__ = [
    "JsonFormatter",
    "MetricsRecorder",
    "NoopMetricsRecorder",
    "ObservableMixin",
    "PrometheusMetricsRecorder",
    "TextFormatter",
    "bootstrap_logging",
    "bootstrap_logging_from_settings",
    "configure_prometheus_metrics",
    "get_metrics_recorder",
    "render_prometheus_metrics",
    "set_metrics_recorder",
]
