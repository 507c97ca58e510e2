"""Declarative aggregation stages and their translation to MongoDB pipelines."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, ClassVar

from bookstore.errors import InvalidSpecError
from bookstore.query.builder import native_value
from bookstore.query.specs import ID_FIELD, SortSpec, check_field_name

_OPERATION = "build_pipeline"


class Expression:
    """Base class for computed values inside a pipeline."""

    __slots__ = ()

    def to_native(self) -> Any:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class FieldRef(Expression):
    name: str

    def __post_init__(self) -> None:
        check_field_name(self.name, operation=_OPERATION)

    def to_native(self) -> str:
        return f"${self.name}"


@dataclass(frozen=True, slots=True)
class Literal(Expression):
    value: Any

    def to_native(self) -> Any:
        if isinstance(self.value, str):
            return {"$literal": self.value}
        return native_value(self.value, operation=_OPERATION)


@dataclass(frozen=True, slots=True)
class Divide(Expression):
    dividend: Any
    divisor: Any

    def to_native(self) -> dict[str, Any]:
        return {"$divide": [_native(self.dividend), _native(self.divisor)]}


@dataclass(frozen=True, slots=True)
class Multiply(Expression):
    left: Any
    right: Any

    def to_native(self) -> dict[str, Any]:
        return {"$multiply": [_native(self.left), _native(self.right)]}


@dataclass(frozen=True, slots=True)
class Floor(Expression):
    operand: Any

    def to_native(self) -> dict[str, Any]:
        return {"$floor": _native(self.operand)}


@dataclass(frozen=True, slots=True)
class Round(Expression):
    operand: Any
    places: int = 0

    def to_native(self) -> dict[str, Any]:
        return {"$round": [_native(self.operand), self.places]}


def to_expression(value: Any) -> Expression:
    """Strings are field references; numbers are literals."""
    if isinstance(value, Expression):
        return value
    if isinstance(value, str):
        return FieldRef(value)
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return Literal(value)
    raise InvalidSpecError(_OPERATION, None, f"not an expression: {value!r}")


def _native(value: Any) -> Any:
    return to_expression(value).to_native()


def decade_of(year_field: str) -> Expression:
    """``floor(year / 10) * 10``: 1949 -> 1940, 1988 -> 1980."""
    return Multiply(Floor(Divide(FieldRef(year_field), 10)), 10)


@dataclass(frozen=True, slots=True)
class Accumulator:
    """A per-group aggregation: ``count``, ``average`` or ``sum``."""

    kind: str
    field: str | Expression | None = None

    KINDS: ClassVar[frozenset[str]] = frozenset({"count", "average", "sum"})

    def to_native(self) -> dict[str, Any]:
        if self.kind not in self.KINDS:
            raise InvalidSpecError(_OPERATION, None, f"unknown aggregation kind: {self.kind!r}")
        if self.kind == "count":
            if self.field is not None:
                raise InvalidSpecError(_OPERATION, None, "count takes no field")
            return {"$sum": 1}
        if self.field is None:
            raise InvalidSpecError(_OPERATION, None, f"{self.kind} requires a field")
        operand = to_expression(self.field).to_native()
        return {"$avg": operand} if self.kind == "average" else {"$sum": operand}


def count() -> Accumulator:
    return Accumulator("count")


def average(field: str | Expression) -> Accumulator:
    return Accumulator("average", field)


def total(field: str | Expression) -> Accumulator:
    return Accumulator("sum", field)


@dataclass(frozen=True, slots=True)
class Group:
    """Group documents by ``key``; the key value is emitted as ``_id``.

    ``key=None`` folds the whole input into a single group.
    """

    key: str | Expression | None
    aggregations: Mapping[str, Accumulator] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Sort:
    spec: SortSpec | str | Sequence[str | tuple[str, Any]]


@dataclass(frozen=True, slots=True)
class Limit:
    count: int


@dataclass(frozen=True, slots=True)
class Compute:
    """Add computed fields to every document flowing through."""

    fields: Mapping[str, Any]


PipelineStage = Group | Sort | Limit | Compute


@dataclass(frozen=True, slots=True)
class NativePipeline:
    """MongoDB ``aggregate`` stages. Only built by :func:`build_pipeline`."""

    stages: list[dict[str, Any]]


def build_pipeline(stages: Sequence[PipelineStage]) -> NativePipeline:
    """Translate stages 1:1, in order.

    After a ``Group`` only ``_id`` and the aggregation names exist, so a
    later ``Sort`` may only reference those (plus any ``Compute`` output).
    """
    if not stages:
        raise InvalidSpecError(_OPERATION, None, "pipeline requires at least one stage")

    native: list[dict[str, Any]] = []
    # None while the input is still raw documents with an open shape
    available: set[str] | None = None

    for stage in stages:
        if isinstance(stage, Group):
            native.append(_group(stage))
            available = {ID_FIELD, *stage.aggregations}
        elif isinstance(stage, Sort):
            spec = SortSpec.coerce(stage.spec)
            if available is not None:
                unknown = [name for name in spec.fields if name.split(".")[0] not in available]
                if unknown:
                    raise InvalidSpecError(
                        _OPERATION,
                        None,
                        f"sort field {unknown[0]!r} does not exist after grouping; "
                        f"available: {sorted(available)}",
                    )
            native.append({"$sort": dict(spec.to_native())})
        elif isinstance(stage, Limit):
            if not isinstance(stage.count, int) or isinstance(stage.count, bool) or stage.count < 1:
                raise InvalidSpecError(_OPERATION, None, f"limit must be >= 1: {stage.count!r}")
            native.append({"$limit": stage.count})
        elif isinstance(stage, Compute):
            if not stage.fields:
                raise InvalidSpecError(_OPERATION, None, "compute requires at least one field")
            computed = {}
            for name, expression in stage.fields.items():
                check_field_name(name, operation=_OPERATION)
                computed[name] = to_expression(expression).to_native()
            native.append({"$addFields": computed})
            if available is not None:
                available.update(stage.fields)
        else:
            raise InvalidSpecError(_OPERATION, None, f"unknown pipeline stage: {stage!r}")

    return NativePipeline(stages=native)


def _group(stage: Group) -> dict[str, Any]:
    if not stage.aggregations:
        raise InvalidSpecError(_OPERATION, None, "group requires at least one aggregation")

    key = None if stage.key is None else to_expression(stage.key).to_native()
    group: dict[str, Any] = {ID_FIELD: key}
    for name, accumulator in stage.aggregations.items():
        check_field_name(name, operation=_OPERATION)
        if name == ID_FIELD:
            raise InvalidSpecError(_OPERATION, None, "aggregation output cannot be named '_id'")
        if not isinstance(accumulator, Accumulator):
            raise InvalidSpecError(
                _OPERATION, None, f"unknown aggregation kind for {name!r}: {accumulator!r}"
            )
        group[name] = accumulator.to_native()
    return {"$group": group}
