"""Book catalog operations built on the query builders, executor and mapper."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Any

from bson.decimal128 import Decimal128

from bookstore.db.connection import Connection
from bookstore.db.executor import DEFAULT_TIMEOUT_SECONDS, Executor
from bookstore.db.indexes import IndexManager, IndexSpec, PlanComparison
from bookstore.errors import InvalidSpecError
from bookstore.observability.metrics import MetricsRecorder, get_metrics_recorder
from bookstore.query.builder import build_query
from bookstore.query.pipeline import (
    Group,
    Limit,
    PipelineStage,
    Sort,
    average,
    build_pipeline,
    count,
    decade_of,
)
from bookstore.query.specs import Direction, Filter, Page, Projection, SortSpec
from bookstore.records import Book, DecodeResult, decode, decode_many

logger = logging.getLogger(__name__)

CATALOG_INDEXES: tuple[IndexSpec, ...] = (
    IndexSpec.of("title"),
    IndexSpec.of("author", "published_year"),
)
STATS_KEYS = ("genre", "author", "decade")
UNKNOWN_KEY = "unknown"


def format_decade(decade: Any) -> str:
    """Label a numeric decade: ``1940`` -> ``"1940s"``."""
    if decade is None or isinstance(decade, bool):
        return UNKNOWN_KEY
    return f"{int(decade)}s"


class BookCatalog:
    """The bookstore's read, write, reporting and index operations.

    Example usage::

        async with ConnectionManager(settings.mongodb).session() as connection:
            catalog = BookCatalog(connection)
            await catalog.update_price("The Alchemist", Decimal("15.99"))
            print(await catalog.count_by_decade())
    """

    def __init__(
        self,
        connection: Connection,
        *,
        collection: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._executor = Executor(
            connection, collection=collection, timeout_seconds=timeout_seconds, metrics=metrics
        )
        self._indexes = IndexManager(
            connection, collection=collection, timeout_seconds=timeout_seconds, metrics=metrics
        )
        self._metrics = metrics

    @property
    def collection_name(self) -> str:
        return self._executor.collection_name

    async def find(
        self,
        filter: Filter | None = None,
        *,
        projection: Projection | str | Sequence[str] | None = None,
        sort: SortSpec | str | Sequence[str | tuple[str, Any]] | None = None,
        page: Page | None = None,
    ) -> DecodeResult:
        """Find books; documents that fail to decode are reported, not dropped silently."""
        if projection is not None:
            projection = Projection.coerce(projection)
            if "title" not in projection.fields:
                raise InvalidSpecError(
                    "build_query", self.collection_name, "a book projection must include 'title'"
                )

        documents = await self._executor.execute(build_query(filter, projection, sort, page))
        result = decode_many(documents, collection=self.collection_name)
        if result.failures:
            metrics = get_metrics_recorder() if self._metrics is None else self._metrics
            metrics.observe_decode_failures(
                collection=self.collection_name, count=len(result.failures)
            )
        for failure in result.failures:
            logger.warning(
                "Skipping undecodable document",
                extra={
                    "collection": self.collection_name,
                    "index": failure.index,
                    "document_id": failure.document_id,
                    "field": failure.error.field,
                },
            )
        return result

    async def find_by_title(self, title: str) -> Book | None:
        document = await self._executor.find_one({"title": title})
        return None if document is None else decode(document, collection=self.collection_name)

    async def update_price(self, title: str, price: Decimal) -> int:
        """Set the price of the first book titled ``title``; return modified count."""
        return await self._executor.update_one({"title": title}, {"price": price})

    async def delete_by_title(self, title: str) -> int:
        return await self._executor.delete_one({"title": title})

    async def seed(self, books: Iterable[Book]) -> int:
        """Insert ``books`` in order and return how many were stored."""
        return len(await self._executor.insert_many(books))

    async def average_price_by_genre(self) -> dict[str | None, Decimal | None]:
        """Average price per genre, ordered by genre; books without one are keyed ``None``."""
        rows = await self._aggregate(
            [
                Group("genre", {"average_price": average("price")}),
                Sort(SortSpec.of("_id")),
            ]
        )
        return {_key(row["_id"]): _price(row.get("average_price")) for row in rows}

    async def top_authors(self, limit: int = 1) -> list[tuple[str | None, int]]:
        """Authors with the most books; ties are broken by author name."""
        rows = await self._aggregate(
            [
                Group("author", {"book_count": count()}),
                Sort(SortSpec.of(("book_count", Direction.DESCENDING), "_id")),
                Limit(limit),
            ]
        )
        return [(_key(row["_id"]), int(row["book_count"])) for row in rows]

    async def count_by_decade(self) -> dict[str, int]:
        """Books per publication decade, oldest first: ``{"1940s": 1, ...}``."""
        rows = await self._aggregate(
            [
                Group(decade_of("published_year"), {"count": count()}),
                Sort(SortSpec.of("_id")),
            ]
        )
        return {format_decade(row["_id"]): int(row["count"]) for row in rows}

    async def stats(self, by: str) -> dict[str | None, int] | dict[str, int]:
        """Count books per ``genre``, ``author`` or ``decade``.

        Books missing the genre or author are counted under ``None``, never
        under a name a real book could carry. Decades use :func:`format_decade`.
        """
        if by == "decade":
            return await self.count_by_decade()
        if by not in STATS_KEYS:
            raise InvalidSpecError(
                "build_pipeline",
                self.collection_name,
                f"unknown stats key {by!r}; expected one of {', '.join(STATS_KEYS)}",
            )
        rows = await self._aggregate([Group(by, {"count": count()}), Sort(SortSpec.of("_id"))])
        return {_key(row["_id"]): int(row["count"]) for row in rows}

    async def create_indexes(self) -> dict[str, bool]:
        """Ensure the title and author/year indexes; map index name to "created"."""
        created: dict[str, bool] = {}
        for spec in CATALOG_INDEXES:
            created[spec.index_name()] = await self._indexes.ensure_index(spec)
        return created

    async def explain_title(self, title: str) -> PlanComparison:
        """Compare a title lookup as a collection scan and as planned."""
        return await self._indexes.compare(build_query({"title": title}))

    async def _aggregate(self, stages: Sequence[PipelineStage]) -> list[dict[str, Any]]:
        return await self._executor.execute(build_pipeline(stages))


def _key(key: Any) -> str | None:
    return None if key is None else str(key)


def _price(value: Any) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
