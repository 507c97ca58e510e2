"""Structured logging bootstrap.

Logs are the diagnostic stream: they go to ``stderr`` by default so that
command output on ``stdout`` stays machine readable. Records logged with
``exc_info`` of a :class:`~bookstore.errors.QueryError` carry the failed
operation and collection as fields.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TextIO

from bookstore.errors import QueryError

if TYPE_CHECKING:
    from bookstore.config.models import AppSettings

DRIVER_LOGGERS = ("pymongo", "motor")

_RESERVED_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "service",
}


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Fields passed through ``extra=`` plus query error context."""
    fields = {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_KEYS and not key.startswith("_")
    }
    error = record.exc_info[1] if record.exc_info else None
    if isinstance(error, QueryError):
        fields.setdefault("error_type", type(error).__name__)
        fields.setdefault("operation", error.operation)
        if error.collection is not None:
            fields.setdefault("collection", error.collection)
    return fields


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def __init__(self, *, service: str) -> None:
        super().__init__()
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
            **record_fields(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


class TextFormatter(logging.Formatter):
    """``<time> <LEVEL> <logger>: <message> key=value ...`` for terminals."""

    def __init__(self, *, service: str) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")
        self._service = service

    def format(self, record: logging.LogRecord) -> str:
        fields = {"service": self._service, **record_fields(record)}
        pairs = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        return f"{super().format(record)} {pairs}"


def bootstrap_logging(
    *,
    service: str,
    level: str = "INFO",
    log_format: str = "json",
    logger: logging.Logger | None = None,
    stream: TextIO | None = None,
    force: bool = True,
    driver_level: str = "WARNING",
) -> logging.Logger:
    """Install one stream handler on ``logger`` (the root logger by default).

    The pymongo and motor loggers are held at ``driver_level`` so that
    ``DEBUG`` shows this package's queries without the driver's heartbeats.
    """
    target = logger or logging.getLogger()
    if force:
        for handler in list(target.handlers):
            target.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr if stream is None else stream)
    handler.setFormatter(
        TextFormatter(service=service) if log_format == "text" else JsonFormatter(service=service)
    )
    target.addHandler(handler)
    target.setLevel(level.upper())
    if target is not logging.getLogger():
        target.propagate = False

    for name in DRIVER_LOGGERS:
        logging.getLogger(name).setLevel(driver_level.upper())
    return target


def bootstrap_logging_from_settings(
    app_settings: AppSettings,
    *,
    logger: logging.Logger | None = None,
    stream: TextIO | None = None,
    force: bool = True,
) -> logging.Logger:
    return bootstrap_logging(
        service=app_settings.service_name,
        level=app_settings.logging.level,
        log_format=app_settings.logging.format,
        logger=logger,
        stream=stream,
        force=force,
    )
