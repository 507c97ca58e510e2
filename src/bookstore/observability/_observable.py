"""Metrics and debug logging shared by the store-facing components."""

from __future__ import annotations

import logging
from time import perf_counter
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookstore.observability.metrics import MetricsRecorder

logger = logging.getLogger("bookstore.store")


class ObservableMixin:
    """Reports each store call against ``collection_name``.

    Subclasses expose ``collection_name`` and a ``_metrics`` attribute; a
    ``None`` recorder means the process-wide one.
    """

    collection_name: str
    _metrics: MetricsRecorder | None

    def _metrics_recorder(self) -> MetricsRecorder:
        from bookstore.observability.metrics import get_metrics_recorder

        return get_metrics_recorder() if self._metrics is None else self._metrics

    def _observe_operation(self, operation: str, started: float, *, success: bool) -> None:
        duration = perf_counter() - started
        self._metrics_recorder().observe_operation(
            collection=self.collection_name,
            operation=operation,
            duration_seconds=duration,
            success=success,
        )
        if success:
            logger.debug(
                "%s on %s took %.1f ms",
                operation,
                self.collection_name,
                duration * 1000,
                extra={"operation": operation, "duration_ms": round(duration * 1000, 3)},
            )

    def _observe_error(self, operation: str, started: float, error: BaseException) -> None:
        from bookstore.observability.metrics import error_kind

        kind = error_kind(error)
        self._observe_operation(operation, started, success=False)
        self._metrics_recorder().observe_error(
            collection=self.collection_name, operation=operation, kind=kind
        )
        logger.warning(
            "%s on %s failed: %s",
            operation,
            self.collection_name,
            error,
            extra={"operation": operation, "kind": kind},
        )
