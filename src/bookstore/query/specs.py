"""Store-independent query specifications: filters, sorts, pages, projections."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar

from bookstore.errors import InvalidSpecError

ID_FIELD = "_id"

Filter = Mapping[str, Any]


def check_field_name(name: object, *, operation: str) -> str:
    """Return ``name`` if it is a usable document field name."""
    if not isinstance(name, str) or not name.strip():
        raise InvalidSpecError(operation, None, f"field name must be a non-empty string: {name!r}")
    if name.startswith("$"):
        raise InvalidSpecError(operation, None, f"field name cannot start with '$': {name!r}")
    return name


class Direction(IntEnum):
    """Sort or index direction."""

    ASCENDING = 1
    DESCENDING = -1

    @classmethod
    def parse(cls, value: object) -> Direction:
        """Accept a ``Direction``, ``1``/``-1`` or ``"asc"``/``"desc"``."""
        if isinstance(value, Direction):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized in {"asc", "ascending", "1"}:
                return cls.ASCENDING
            if normalized in {"desc", "descending", "-1"}:
                return cls.DESCENDING
        elif isinstance(value, int) and not isinstance(value, bool) and value in (1, -1):
            return cls(value)
        raise InvalidSpecError("sort", None, f"unknown direction: {value!r}")


@dataclass(frozen=True, slots=True)
class Comparison:
    """A single-operator predicate on one field."""

    value: Any
    operator: ClassVar[str] = "$eq"

    def to_native(self) -> dict[str, Any]:
        return {self.operator: self.value}


@dataclass(frozen=True, slots=True)
class Eq(Comparison):
    operator: ClassVar[str] = "$eq"


@dataclass(frozen=True, slots=True)
class Ne(Comparison):
    operator: ClassVar[str] = "$ne"


@dataclass(frozen=True, slots=True)
class Gt(Comparison):
    """Strictly greater than."""

    operator: ClassVar[str] = "$gt"


@dataclass(frozen=True, slots=True)
class Gte(Comparison):
    operator: ClassVar[str] = "$gte"


@dataclass(frozen=True, slots=True)
class Lt(Comparison):
    """Strictly less than."""

    operator: ClassVar[str] = "$lt"


@dataclass(frozen=True, slots=True)
class Lte(Comparison):
    operator: ClassVar[str] = "$lte"


@dataclass(frozen=True, slots=True)
class In(Comparison):
    """Membership in a list of values."""

    operator: ClassVar[str] = "$in"

    def to_native(self) -> dict[str, Any]:
        return {self.operator: list(self.value)}


OPERATORS: dict[str, type[Comparison]] = {
    "eq": Eq,
    "ne": Ne,
    "gt": Gt,
    "gte": Gte,
    "lt": Lt,
    "lte": Lte,
    "in": In,
}


@dataclass(frozen=True, slots=True)
class SortSpec:
    """Ordered ``(field, direction)`` keys; earlier keys take precedence."""

    keys: tuple[tuple[str, Direction], ...]

    def __post_init__(self) -> None:
        keys = tuple(self.keys)
        if not keys:
            raise InvalidSpecError("sort", None, "sort requires at least one field")

        normalized: list[tuple[str, Direction]] = []
        seen: set[str] = set()
        for field, direction in keys:
            check_field_name(field, operation="sort")
            if field in seen:
                raise InvalidSpecError("sort", None, f"duplicate sort field: {field!r}")
            seen.add(field)
            normalized.append((field, Direction.parse(direction)))
        object.__setattr__(self, "keys", tuple(normalized))

    @classmethod
    def of(cls, *keys: str | tuple[str, Any]) -> SortSpec:
        """``SortSpec.of("price", ("title", "desc"))``; bare names sort ascending."""
        return cls(
            tuple((key, Direction.ASCENDING) if isinstance(key, str) else key for key in keys)
        )

    @classmethod
    def coerce(cls, value: SortSpec | str | Sequence[str | tuple[str, Any]]) -> SortSpec:
        """Accept a ``SortSpec``, one field name, or a sequence of keys."""
        if isinstance(value, SortSpec):
            return value
        if isinstance(value, str):
            return cls.of(value)
        return cls.of(*value)

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(field for field, _ in self.keys)

    def reversed(self) -> SortSpec:
        """Same fields with every direction flipped."""
        return SortSpec(
            tuple(
                (field, Direction.DESCENDING if d is Direction.ASCENDING else Direction.ASCENDING)
                for field, d in self.keys
            )
        )

    def to_native(self) -> list[tuple[str, int]]:
        return [(field, int(direction)) for field, direction in self.keys]


@dataclass(frozen=True, slots=True)
class Page:
    """A ``(limit, offset)`` window over a sorted result.

    ``limit=None`` is unbounded. ``limit=0`` selects no documents at all; it
    is never forwarded to MongoDB, where a zero limit means "no limit".
    """

    limit: int | None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.limit is not None and (
            not isinstance(self.limit, int) or isinstance(self.limit, bool) or self.limit < 0
        ):
            raise InvalidSpecError("page", None, f"limit must be >= 0 or None: {self.limit!r}")
        if not isinstance(self.offset, int) or isinstance(self.offset, bool) or self.offset < 0:
            raise InvalidSpecError("page", None, f"offset must be >= 0: {self.offset!r}")

    @classmethod
    def number(cls, number: int, size: int) -> Page:
        """Return the ``number``-th page (1-based) of ``size`` documents."""
        if not isinstance(number, int) or isinstance(number, bool) or number < 1:
            raise InvalidSpecError("page", None, f"page number must be >= 1: {number!r}")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise InvalidSpecError("page", None, f"page size must be >= 0: {size!r}")
        return cls(limit=size, offset=(number - 1) * size)

    @property
    def is_empty(self) -> bool:
        return self.limit == 0


@dataclass(frozen=True, slots=True)
class Projection:
    """Explicit allow-list of returned fields."""

    fields: tuple[str, ...]
    include_id: bool = True

    def __post_init__(self) -> None:
        fields = (self.fields,) if isinstance(self.fields, str) else tuple(self.fields)
        if not fields:
            raise InvalidSpecError("projection", None, "projection requires at least one field")
        for field in fields:
            check_field_name(field, operation="projection")
        object.__setattr__(self, "fields", fields)

    @classmethod
    def coerce(cls, value: Projection | str | Sequence[str]) -> Projection:
        """Accept a ``Projection``, one field name, or a sequence of names."""
        if isinstance(value, Projection):
            return value
        return cls(value if isinstance(value, str) else tuple(value))

    def to_native(self) -> dict[str, int]:
        native = {field: 1 for field in self.fields if field != ID_FIELD}
        native[ID_FIELD] = 1 if self.include_id else 0
        return native
