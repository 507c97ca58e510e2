"""Typed book records and the mapping to and from stored documents."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any, Final

from bson.decimal128 import Decimal128

from bookstore.errors import DecodeError, InvalidSpecError


class Absent:
    """Marker for a field the stored document does not carry.

    Distinct from every real value, so ``price is ABSENT`` and
    ``price == Decimal(0)`` can never be confused.
    """

    __slots__ = ()
    _instance: Absent | None = None

    def __new__(cls) -> Absent:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Final = Absent()

REQUIRED_FIELDS: Final = frozenset({"title"})


@dataclass(frozen=True, slots=True)
class Book:
    """One book document."""

    title: str
    author: str | Absent = ABSENT
    genre: str | Absent = ABSENT
    published_year: int | Absent = ABSENT
    price: Decimal | Absent = ABSENT
    in_stock: bool | Absent = ABSENT
    pages: int | Absent = ABSENT
    publisher: str | Absent = ABSENT
    id: Any = field(default=ABSENT, compare=False)

    def to_document(self) -> dict[str, Any]:
        """Return the stored form, leaving out absent fields."""
        document: dict[str, Any] = {}
        if self.id is not ABSENT:
            document["_id"] = self.id
        for name in BOOK_FIELDS:
            value = getattr(self, name)
            if value is ABSENT:
                continue
            document[name] = float(value) if isinstance(value, Decimal) else value
        return document


BOOK_FIELDS: Final = tuple(f.name for f in fields(Book) if f.name != "id")


@dataclass(frozen=True, slots=True)
class DecodeFailure:
    """A stored document that could not be mapped to a :class:`Book`."""

    index: int
    document_id: Any
    error: DecodeError


@dataclass(slots=True)
class DecodeResult:
    """Decoded records plus the documents that failed, in input order."""

    records: list[Book] = field(default_factory=list)
    failures: list[DecodeFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def __len__(self) -> int:
        return len(self.records)


def decode(raw: Mapping[str, Any], *, collection: str | None = None) -> Book:
    """Map one stored document to a :class:`Book`.

    Missing and ``null`` fields become ``ABSENT``; unknown fields are ignored.

    Raises:
        DecodeError: If ``title`` is missing or a field has the wrong type.
    """
    if not isinstance(raw, Mapping):
        raise DecodeError(collection, f"expected a document, got {type(raw).__name__}")

    document_id = raw.get("_id", ABSENT)
    values: dict[str, Any] = {}
    for name in BOOK_FIELDS:
        value = raw.get(name)
        if value is None:
            if name in REQUIRED_FIELDS:
                raise DecodeError(
                    collection,
                    f"document {_describe(document_id)} is missing required field {name!r}",
                    document_id=None if document_id is ABSENT else document_id,
                    field=name,
                )
            continue
        values[name] = _coerce(name, value, document_id, collection)

    return Book(**values, id=document_id)


def decode_many(raws: Iterable[Mapping[str, Any]], *, collection: str | None = None) -> DecodeResult:
    """Decode a batch; one malformed document never discards the others."""
    result = DecodeResult()
    for index, raw in enumerate(raws):
        try:
            result.records.append(decode(raw, collection=collection))
        except DecodeError as exc:
            result.failures.append(
                DecodeFailure(index=index, document_id=exc.document_id, error=exc)
            )
    return result


def validate_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Validate a partial update against the book schema.

    Returns the values in stored form (``Decimal`` prices become floats).

    Raises:
        InvalidSpecError: On unknown fields, ``_id``, ``None`` or wrong types.
    """
    if not isinstance(changes, Mapping) or not changes:
        raise InvalidSpecError("validate_changes", None, "changes must be a non-empty mapping")

    validated: dict[str, Any] = {}
    for name, value in changes.items():
        if name not in BOOK_FIELDS:
            raise InvalidSpecError("validate_changes", None, f"unknown book field: {name!r}")
        if value is None or value is ABSENT:
            raise InvalidSpecError(
                "validate_changes", None, f"field {name!r} cannot be set to an empty value"
            )
        try:
            coerced = _coerce(name, value, ABSENT, None)
        except DecodeError as exc:
            raise InvalidSpecError("validate_changes", None, exc.message) from exc
        if name == "title" and not coerced.strip():
            raise InvalidSpecError("validate_changes", None, "title cannot be blank")
        validated[name] = float(coerced) if isinstance(coerced, Decimal) else coerced
    return validated


def _coerce(name: str, value: Any, document_id: Any, collection: str | None) -> Any:
    if name in {"title", "author", "genre", "publisher"}:
        if isinstance(value, str):
            return value
    elif name in {"published_year", "pages"}:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
    elif name == "in_stock":
        if isinstance(value, bool):
            return value
    elif name == "price":
        price = _to_decimal(value)
        if price is not None:
            return price

    raise DecodeError(
        collection,
        f"document {_describe(document_id)} field {name!r} has unexpected "
        f"type {type(value).__name__}",
        document_id=None if document_id is ABSENT else document_id,
        field=name,
    )


def _to_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal128):
        value = value.to_decimal()
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            price = Decimal(str(value))
        except InvalidOperation:
            return None
        return price if price.is_finite() else None
    return None


def _describe(document_id: Any) -> str:
    return "<no id>" if document_id is ABSENT else repr(document_id)
