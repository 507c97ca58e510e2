"""Run built queries, pipelines and single-document writes against a connection."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from time import perf_counter
from typing import Any, TypeVar

from bookstore.db._translate import translate_error
from bookstore.db.connection import Connection
from bookstore.errors import InvalidSpecError, StoreError
from bookstore.observability._observable import ObservableMixin
from bookstore.observability.metrics import MetricsRecorder
from bookstore.query.builder import NativeQuery, build_filter
from bookstore.query.pipeline import NativePipeline
from bookstore.query.specs import Filter, Projection
from bookstore.records import Book, validate_changes

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 5.0


class CollectionClient(ObservableMixin):
    """Shared plumbing for components that call one collection.

    Each store call runs under the connection lock, inside a deadline, with
    driver errors translated and metrics recorded. On expiry a call raises
    ``QueryTimeoutError``; the server may still complete it, so callers must
    treat a timeout as an unknown outcome. Nothing is retried here.
    """

    def __init__(
        self,
        connection: Connection,
        *,
        collection: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._connection = connection
        self._collection_name = collection or connection.collection_name
        self._timeout_seconds = timeout_seconds
        self._metrics = metrics

    @property
    def collection_name(self) -> str:
        return self._collection_name

    async def _run(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        timeout: float | None,
    ) -> T:
        deadline = self._timeout(timeout)
        started = perf_counter()

        async def guarded() -> T:
            # store call is created under the connection lock
            async with self._connection.operation(operation):
                return await call()

        try:
            result = await asyncio.wait_for(guarded(), timeout=deadline)
        except Exception as exc:
            error = translate_error(exc, operation=operation, collection=self._collection_name)
            self._observe_error(operation, started, error)
            if isinstance(error, StoreError):
                logger.error(
                    "Store rejected %s",
                    operation,
                    extra={
                        "collection": self._collection_name,
                        "code": error.code,
                        "details": error.details,
                    },
                )
            if error is exc:
                raise
            raise error from exc

        self._observe_operation(operation, started, success=True)
        return result

    def _collection(self) -> Any:
        return self._connection.collection(self._collection_name)

    def _timeout(self, timeout: float | None) -> float:
        resolved = self._timeout_seconds if timeout is None else timeout
        if resolved <= 0:
            raise InvalidSpecError(
                "execute", self._collection_name, f"timeout must be positive: {resolved!r}"
            )
        return resolved

    def _max_time_ms(self, timeout: float | None) -> int:
        return max(1, int(self._timeout(timeout) * 1000))


class Executor(CollectionClient):
    """Executes reads and single-document writes on one acquired connection."""

    async def execute(
        self,
        query: NativeQuery | NativePipeline,
        *,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Run a built query (``find``) or pipeline (``aggregate``)."""
        if isinstance(query, NativeQuery):
            if query.empty:
                return []
            return await self._run("find", lambda: self._find(query, timeout), timeout)
        if isinstance(query, NativePipeline):
            return await self._run("aggregate", lambda: self._aggregate(query, timeout), timeout)
        raise InvalidSpecError(
            "execute",
            self._collection_name,
            f"expected NativeQuery or NativePipeline, got {type(query).__name__}",
        )

    async def find_one(
        self,
        filter: Filter,
        *,
        projection: Projection | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any] | None:
        """Return the first document matching ``filter`` or ``None``."""
        native_filter = build_filter(filter)
        native_projection = None if projection is None else projection.to_native()
        max_time_ms = self._max_time_ms(timeout)
        document = await self._run(
            "find_one",
            lambda: self._collection().find_one(
                native_filter,
                projection=native_projection,
                max_time_ms=max_time_ms,
            ),
            timeout,
        )
        return None if document is None else dict(document)

    async def count(self, filter: Filter | None = None, *, timeout: float | None = None) -> int:
        """Return the number of documents matching ``filter``."""
        native_filter = build_filter(filter)
        max_time_ms = self._max_time_ms(timeout)
        result = await self._run(
            "count",
            lambda: self._collection().count_documents(native_filter, maxTimeMS=max_time_ms),
            timeout,
        )
        return int(result)

    async def update_one(
        self,
        filter: Filter,
        changes: Mapping[str, Any],
        *,
        timeout: float | None = None,
    ) -> int:
        """Set ``changes`` on the first matching book; return modified count.

        A filter that matches nothing returns ``0``. An empty filter is
        rejected so that a stray call cannot update an arbitrary document.
        """
        native_filter = self._write_filter("update_one", filter)
        update = {"$set": validate_changes(changes)}
        result = await self._run(
            "update_one",
            lambda: self._collection().update_one(native_filter, update),
            timeout,
        )
        return int(result.modified_count)

    async def delete_one(self, filter: Filter, *, timeout: float | None = None) -> int:
        """Delete the first matching book; return deleted count."""
        native_filter = self._write_filter("delete_one", filter)
        result = await self._run(
            "delete_one",
            lambda: self._collection().delete_one(native_filter),
            timeout,
        )
        return int(result.deleted_count)

    async def insert_many(
        self,
        books: Iterable[Book],
        *,
        timeout: float | None = None,
    ) -> list[Any]:
        """Insert books in order and return their ids."""
        documents = []
        for book in books:
            if not isinstance(book, Book):
                raise InvalidSpecError(
                    "insert_many", self._collection_name, f"expected Book, got {book!r}"
                )
            documents.append(book.to_document())
        if not documents:
            return []

        result = await self._run(
            "insert_many",
            lambda: self._collection().insert_many(documents, ordered=True),
            timeout,
        )
        return list(result.inserted_ids)

    async def _find(self, query: NativeQuery, timeout: float | None) -> list[dict[str, Any]]:
        cursor = self._collection().find(
            query.filter,
            projection=query.projection,
            max_time_ms=self._max_time_ms(timeout),
        )
        if query.sort:
            cursor = cursor.sort(query.sort)
        if query.skip:
            cursor = cursor.skip(query.skip)
        if query.limit is not None:
            cursor = cursor.limit(query.limit)
        documents = await cursor.to_list(length=None)
        return [dict(document) for document in documents]

    async def _aggregate(
        self, pipeline: NativePipeline, timeout: float | None
    ) -> list[dict[str, Any]]:
        cursor = self._collection().aggregate(pipeline.stages, maxTimeMS=self._max_time_ms(timeout))
        documents = await cursor.to_list(length=None)
        return [dict(document) for document in documents]

    def _write_filter(self, operation: str, filter: Filter) -> dict[str, Any]:
        native_filter = build_filter(filter)
        if not native_filter:
            raise InvalidSpecError(
                operation, self._collection_name, "write operations require a non-empty filter"
            )
        return native_filter
