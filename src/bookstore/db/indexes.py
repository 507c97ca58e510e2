"""Idempotent index declaration and query plan inspection."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from bookstore.db.executor import CollectionClient
from bookstore.errors import InvalidSpecError, StoreError
from bookstore.query.builder import NativeQuery
from bookstore.query.specs import Direction, check_field_name

logger = logging.getLogger(__name__)

_INDEX_STAGES = frozenset({"IXSCAN", "EXPRESS_IXSCAN", "IDHACK", "EXPRESS_IDHACK"})
_CHILD_KEYS = ("inputStage", "queryPlan", "thenStage", "elseStage")
FULL_SCAN_HINT: dict[str, int] = {"$natural": 1}


@dataclass(frozen=True, slots=True)
class IndexSpec:
    """One index; several fields make a single compound index."""

    fields: tuple[tuple[str, Direction], ...]
    name: str | None = None
    unique: bool = False

    def __post_init__(self) -> None:
        keys = tuple(self.fields)
        if not keys:
            raise InvalidSpecError("index_spec", None, "index requires at least one field")

        normalized: list[tuple[str, Direction]] = []
        seen: set[str] = set()
        for name, direction in keys:
            check_field_name(name, operation="index_spec")
            if name in seen:
                raise InvalidSpecError("index_spec", None, f"duplicate index field: {name!r}")
            seen.add(name)
            normalized.append((name, Direction.parse(direction)))
        object.__setattr__(self, "fields", tuple(normalized))

    @classmethod
    def of(cls, *keys: str | tuple[str, Any], name: str | None = None, unique: bool = False) -> IndexSpec:
        """``IndexSpec.of("author", "published_year")``; bare names are ascending."""
        return cls(
            tuple((key, Direction.ASCENDING) if isinstance(key, str) else key for key in keys),
            name=name,
            unique=unique,
        )

    def key_document(self) -> list[tuple[str, int]]:
        return [(name, int(direction)) for name, direction in self.fields]

    def index_name(self) -> str:
        """Explicit name, or MongoDB's default such as ``author_1_published_year_1``."""
        if self.name:
            return self.name
        return "_".join(f"{name}_{int(direction)}" for name, direction in self.fields)


@dataclass(frozen=True, slots=True)
class ExecutionStats:
    """Summary of an ``explain`` in ``executionStats`` verbosity."""

    index_used: bool
    index_names: tuple[str, ...]
    winning_stage: str
    returned: int
    keys_examined: int
    docs_examined: int
    execution_time_ms: int
    raw: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_explain(cls, explain: Mapping[str, Any]) -> ExecutionStats:
        planner = explain.get("queryPlanner") or {}
        winning = planner.get("winningPlan") or {}
        stages = list(_walk_plan(winning))
        stats = explain.get("executionStats") or {}
        return cls(
            index_used=any(stage.get("stage") in _INDEX_STAGES for stage in stages),
            index_names=tuple(
                dict.fromkeys(str(stage["indexName"]) for stage in stages if "indexName" in stage)
            ),
            winning_stage=next(
                (str(stage["stage"]) for stage in stages if "stage" in stage), "UNKNOWN"
            ),
            returned=int(stats.get("nReturned", 0)),
            keys_examined=int(stats.get("totalKeysExamined", 0)),
            docs_examined=int(stats.get("totalDocsExamined", 0)),
            execution_time_ms=int(stats.get("executionTimeMillis", 0)),
            raw=dict(explain),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "index_used": self.index_used,
            "index_names": list(self.index_names),
            "winning_stage": self.winning_stage,
            "returned": self.returned,
            "keys_examined": self.keys_examined,
            "docs_examined": self.docs_examined,
            "execution_time_ms": self.execution_time_ms,
        }


@dataclass(frozen=True, slots=True)
class PlanComparison:
    """The same query explained as a forced collection scan and as planned."""

    full_scan: ExecutionStats
    indexed: ExecutionStats

    @property
    def docs_saved(self) -> int:
        return self.full_scan.docs_examined - self.indexed.docs_examined

    def to_dict(self) -> dict[str, Any]:
        return {
            "full_scan": self.full_scan.to_dict(),
            "indexed": self.indexed.to_dict(),
            "docs_saved": self.docs_saved,
        }


class IndexManager(CollectionClient):
    """Declares indexes and reports whether queries use them.

    No locking beyond the store: two processes ensuring the same index race
    to ``createIndexes``, which MongoDB treats as a no-op for an identical
    definition.
    """

    async def list_indexes(self, *, timeout: float | None = None) -> dict[str, list[tuple[str, int]]]:
        """Return ``{index name: [(field, direction), ...]}``."""
        information = await self._run(
            "list_indexes",
            lambda: self._collection().index_information(),
            timeout,
        )
        return {
            name: [(key, _direction(value)) for key, value in info.get("key", [])]
            for name, info in information.items()
        }

    async def ensure_index(self, spec: IndexSpec, *, timeout: float | None = None) -> bool:
        """Create ``spec`` unless an index with the same keys exists.

        Returns ``True`` if an index was created and ``False`` if it was
        already present.

        Raises:
            StoreError: If an index with the same keys but a different
                ``unique`` option exists, or the store rejects the create.
        """
        information = await self._run(
            "list_indexes",
            lambda: self._collection().index_information(),
            timeout,
        )
        wanted = spec.key_document()
        for name, info in information.items():
            keys = [(key, _direction(value)) for key, value in info.get("key", [])]
            if keys != wanted:
                continue
            if bool(info.get("unique", False)) != spec.unique:
                raise StoreError(
                    "ensure_index",
                    self._collection_name,
                    f"index {name!r} on {wanted} exists with unique={not spec.unique}",
                )
            logger.info(
                "Index already present",
                extra={"collection": self._collection_name, "index": name},
            )
            return False

        options: dict[str, Any] = {"name": spec.index_name()}
        if spec.unique:
            options["unique"] = True
        await self._run(
            "create_index",
            lambda: self._collection().create_index(wanted, **options),
            timeout,
        )
        logger.info(
            "Index created",
            extra={"collection": self._collection_name, "index": options["name"]},
        )
        return True

    async def explain(
        self,
        query: NativeQuery,
        *,
        hint: Mapping[str, Any] | str | None = None,
        timeout: float | None = None,
    ) -> ExecutionStats:
        """Explain ``query`` with ``executionStats`` verbosity."""
        if query.empty:
            raise InvalidSpecError(
                "explain", self._collection_name, "a zero-limit query never reaches the store"
            )

        find: dict[str, Any] = {"find": self._collection_name, "filter": query.filter}
        if query.projection is not None:
            find["projection"] = query.projection
        if query.sort:
            find["sort"] = dict(query.sort)
        if query.skip:
            find["skip"] = query.skip
        if query.limit is not None:
            find["limit"] = query.limit
        if hint is not None:
            find["hint"] = dict(hint) if isinstance(hint, Mapping) else hint

        command = {"explain": find, "verbosity": "executionStats"}
        result = await self._run(
            "explain",
            lambda: self._connection.database.command(command),
            timeout,
        )
        return ExecutionStats.from_explain(result)

    async def compare(self, query: NativeQuery, *, timeout: float | None = None) -> PlanComparison:
        """Explain ``query`` as a forced collection scan and with the planner's choice."""
        full_scan = await self.explain(query, hint=FULL_SCAN_HINT, timeout=timeout)
        indexed = await self.explain(query, timeout=timeout)
        return PlanComparison(full_scan=full_scan, indexed=indexed)


def _walk_plan(stage: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    if not isinstance(stage, Mapping):
        return
    yield stage
    for key in _CHILD_KEYS:
        child = stage.get(key)
        if isinstance(child, Mapping):
            yield from _walk_plan(child)
    for child in stage.get("inputStages", []) or []:
        yield from _walk_plan(child)


def _direction(value: Any) -> int:
    # text/2dsphere indexes carry string directions
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value)
    return value
