"""Exception hierarchy for the bookstore package."""

from __future__ import annotations

from typing import Any


class BookstoreError(Exception):
    """Base exception for this package."""


class MissingDependencyError(BookstoreError):
    """Raised when an optional dependency is required but not installed."""


class QueryError(BookstoreError):
    """Base exception for query facade operations."""

    def __init__(
        self,
        operation: str,
        collection: str | None,
        message: str,
    ) -> None:
        self.operation = operation
        self.collection = collection
        self.message = message
        if collection is None:
            super().__init__(f"Query {operation} failed: {message}")
        else:
            super().__init__(f"Query {operation} failed for '{collection}': {message}")


class StoreConnectionError(QueryError, ConnectionError):
    """Raised when the store session cannot be established or was lost."""


class InvalidSpecError(QueryError, ValueError):
    """Raised when a filter, sort, page, pipeline or index spec is malformed.

    Always raised before the store is contacted.
    """


class QueryTimeoutError(QueryError, TimeoutError):
    """Raised when an operation exceeds its deadline.

    The store-side outcome is unknown: a timed out write may still have been
    applied.
    """


class StoreError(QueryError):
    """Raised when the store rejects an otherwise well-formed operation."""

    def __init__(
        self,
        operation: str,
        collection: str | None,
        message: str,
        *,
        code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.details = details
        super().__init__(operation, collection, message)


class DecodeError(QueryError):
    """Raised when a stored document does not match the book shape."""

    def __init__(
        self,
        collection: str | None,
        message: str,
        *,
        document_id: Any = None,
        field: str | None = None,
    ) -> None:
        self.document_id = document_id
        self.field = field
        super().__init__("decode", collection, message)
