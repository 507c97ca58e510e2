"""Translate filter/projection/sort/page specs into MongoDB find arguments.

Everything here is pure: no I/O, and every malformed input raises
``InvalidSpecError`` before the store is contacted.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from bookstore.errors import InvalidSpecError
from bookstore.query.specs import (
    ID_FIELD,
    OPERATORS,
    Comparison,
    Direction,
    Eq,
    Filter,
    In,
    Page,
    Projection,
    SortSpec,
    check_field_name,
)

_SCALARS = (str, int, float, Decimal, bool, datetime, type(None))


@dataclass(frozen=True, slots=True)
class NativeQuery:
    """Arguments for a MongoDB ``find``. Only built by :func:`build_query`."""

    filter: dict[str, Any]
    projection: dict[str, int] | None = None
    sort: list[tuple[str, int]] | None = None
    skip: int = 0
    limit: int | None = None
    empty: bool = False


def native_value(value: Any, *, operation: str = "build_query") -> Any:
    """Convert Python values BSON cannot encode directly.

    A bare ``date`` has no BSON type and is rejected; pass a ``datetime``.
    """
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        raise InvalidSpecError(
            operation, None, f"date values are not supported, use a datetime: {value!r}"
        )
    return value


def build_filter(filter: Filter | None) -> dict[str, Any]:
    """Translate a filter mapping into a MongoDB filter document.

    Plain values are equality matches; ``{"gt": 1950}`` style mappings and
    :class:`Comparison` instances (or a sequence of them) are operator
    predicates. An empty or ``None`` filter matches every document.
    """
    if filter is None:
        return {}
    if not isinstance(filter, Mapping):
        raise InvalidSpecError("build_query", None, f"filter must be a mapping: {filter!r}")

    native: dict[str, Any] = {}
    for field, predicate in filter.items():
        check_field_name(field, operation="build_query")
        native[field] = _build_predicate(field, predicate)
    return native


def build_query(
    filter: Filter | None = None,
    projection: Projection | str | Sequence[str] | None = None,
    sort: SortSpec | str | Sequence[str | tuple[str, Any]] | None = None,
    page: Page | None = None,
) -> NativeQuery:
    """Build a :class:`NativeQuery`.

    A page requires a sort. Sorted queries get ``_id`` ascending appended as
    the last key, so ties keep a fixed relative order in both directions and
    consecutive pages never overlap or skip documents.
    """
    native_filter = build_filter(filter)

    native_projection: dict[str, int] | None = None
    if projection is not None:
        native_projection = Projection.coerce(projection).to_native()

    if page is not None and sort is None:
        raise InvalidSpecError(
            "build_query", None, "a paginated query requires an explicit sort"
        )

    native_sort: list[tuple[str, int]] | None = None
    if sort is not None:
        sort = SortSpec.coerce(sort)
        native_sort = sort.to_native()
        if ID_FIELD not in sort.fields:
            native_sort.append((ID_FIELD, int(Direction.ASCENDING)))

    if page is None:
        return NativeQuery(filter=native_filter, projection=native_projection, sort=native_sort)

    return NativeQuery(
        filter=native_filter,
        projection=native_projection,
        sort=native_sort,
        skip=page.offset,
        limit=page.limit,
        empty=page.is_empty,
    )


def _build_predicate(field: str, predicate: Any) -> Any:
    if isinstance(predicate, Eq) and not isinstance(predicate.value, Mapping):
        return native_value(predicate.value)
    if isinstance(predicate, Comparison):
        return _comparison(field, predicate)
    if isinstance(predicate, Mapping):
        return _merge(field, [_operator(field, name, value) for name, value in predicate.items()])
    if isinstance(predicate, (list, tuple)) and predicate:
        if all(isinstance(item, Comparison) for item in predicate):
            return _merge(field, list(predicate))
    if isinstance(predicate, _SCALARS):
        return native_value(predicate)
    raise InvalidSpecError(
        "build_query", None, f"unsupported predicate for field {field!r}: {predicate!r}"
    )


def _operator(field: str, name: object, value: Any) -> Comparison:
    key = name[1:] if isinstance(name, str) and name.startswith("$") else name
    comparison = OPERATORS.get(key.lower()) if isinstance(key, str) else None
    if comparison is None:
        raise InvalidSpecError(
            "build_query", None, f"unsupported operator {name!r} on field {field!r}"
        )
    return comparison(value)


def _merge(field: str, comparisons: list[Comparison]) -> dict[str, Any]:
    if not comparisons:
        raise InvalidSpecError("build_query", None, f"empty predicate for field {field!r}")

    merged: dict[str, Any] = {}
    for comparison in comparisons:
        native = _comparison(field, comparison)
        duplicate = merged.keys() & native.keys()
        if duplicate:
            raise InvalidSpecError(
                "build_query",
                None,
                f"operator {sorted(duplicate)[0]!r} given twice for field {field!r}",
            )
        merged.update(native)
    return merged


def _comparison(field: str, comparison: Comparison) -> dict[str, Any]:
    if isinstance(comparison, In):
        values = comparison.value
        if isinstance(values, (str, bytes, Mapping)) or not isinstance(
            values, (list, tuple, set, frozenset)
        ):
            raise InvalidSpecError(
                "build_query", None, f"'in' on field {field!r} needs a list of values"
            )
        return {comparison.operator: [native_value(value) for value in values]}
    return {comparison.operator: native_value(comparison.value)}
