"""Map driver exceptions onto the facade's error taxonomy."""

from __future__ import annotations

from pymongo import errors as pymongo_errors

from bookstore.errors import (
    QueryError,
    QueryTimeoutError,
    StoreConnectionError,
    StoreError,
)

_TIMEOUT_ERRORS = (
    TimeoutError,
    pymongo_errors.ExecutionTimeout,
    pymongo_errors.NetworkTimeout,
    pymongo_errors.WTimeoutError,
)
_CONNECTION_ERRORS = (ConnectionError, pymongo_errors.ConnectionFailure)


def translate_error(
    exc: BaseException,
    *,
    operation: str,
    collection: str | None,
) -> QueryError:
    """Return the typed error for ``exc``; typed errors pass through unchanged."""
    if isinstance(exc, QueryError):
        return exc

    detail = str(exc) or type(exc).__name__

    # NetworkTimeout is also a ConnectionFailure; timeouts win
    if isinstance(exc, _TIMEOUT_ERRORS) and not isinstance(
        exc, pymongo_errors.ServerSelectionTimeoutError
    ):
        return QueryTimeoutError(operation, collection, f"timed out, outcome unknown: {detail}")
    if isinstance(exc, _CONNECTION_ERRORS):
        return StoreConnectionError(operation, collection, detail)
    if isinstance(exc, pymongo_errors.OperationFailure):
        return StoreError(
            operation,
            collection,
            detail,
            code=exc.code,
            details=dict(exc.details) if exc.details else None,
        )
    return StoreError(operation, collection, f"{type(exc).__name__}: {detail}")
