"""Tests for filter, sort, page and projection specifications."""

from __future__ import annotations

import pytest

from bookstore.errors import InvalidSpecError
from bookstore.query.specs import (
    Direction,
    Gt,
    In,
    Page,
    Projection,
    SortSpec,
    check_field_name,
)


class TestDirection:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("asc", Direction.ASCENDING),
            ("DESC", Direction.DESCENDING),
            (1, Direction.ASCENDING),
            (-1, Direction.DESCENDING),
            (Direction.DESCENDING, Direction.DESCENDING),
        ],
    )
    def test_parse(self, value: object, expected: Direction) -> None:
        assert Direction.parse(value) is expected

    @pytest.mark.parametrize("value", ["up", 0, 2, True, None])
    def test_parse_rejects_unknown(self, value: object) -> None:
        with pytest.raises(InvalidSpecError, match="unknown direction"):
            Direction.parse(value)


class TestSortSpec:
    def test_of_defaults_to_ascending(self) -> None:
        spec = SortSpec.of("price", ("title", "desc"))

        assert spec.keys == (("price", Direction.ASCENDING), ("title", Direction.DESCENDING))
        assert spec.fields == ("price", "title")
        assert spec.to_native() == [("price", 1), ("title", -1)]

    def test_reversed_flips_every_key(self) -> None:
        spec = SortSpec.of("price", ("title", "desc")).reversed()

        assert spec.to_native() == [("price", -1), ("title", 1)]

    def test_coerce_keeps_a_field_name_whole(self) -> None:
        assert SortSpec.coerce("price") == SortSpec.of("price")
        keys = ["price", ("title", "desc")]
        assert SortSpec.coerce(keys) == SortSpec.of(*keys)
        spec = SortSpec.of("title")
        assert SortSpec.coerce(spec) is spec

    def test_empty_sort_is_rejected(self) -> None:
        with pytest.raises(InvalidSpecError, match="at least one field"):
            SortSpec(())

    def test_duplicate_field_is_rejected(self) -> None:
        with pytest.raises(InvalidSpecError, match="duplicate sort field"):
            SortSpec.of("price", ("price", "desc"))

    def test_operator_field_name_is_rejected(self) -> None:
        with pytest.raises(InvalidSpecError, match="cannot start with"):
            SortSpec.of("$price")


class TestPage:
    def test_number_builds_offset(self) -> None:
        page = Page.number(2, 5)

        assert page == Page(limit=5, offset=5)
        assert page.is_empty is False

    def test_zero_limit_is_empty(self) -> None:
        assert Page(limit=0).is_empty is True

    def test_unbounded_limit(self) -> None:
        page = Page(limit=None, offset=3)

        assert page.limit is None
        assert page.is_empty is False

    @pytest.mark.parametrize(("limit", "offset"), [(-1, 0), (5, -1), (True, 0), (5, 1.5)])
    def test_negative_or_non_integer_values_are_rejected(
        self, limit: object, offset: object
    ) -> None:
        with pytest.raises(InvalidSpecError):
            Page(limit=limit, offset=offset)  # type: ignore[arg-type]

    def test_page_number_must_be_positive(self) -> None:
        with pytest.raises(InvalidSpecError, match="page number"):
            Page.number(0, 5)


class TestProjection:
    def test_excluding_id(self) -> None:
        projection = Projection(("title", "author", "price"), include_id=False)

        assert projection.to_native() == {"title": 1, "author": 1, "price": 1, "_id": 0}

    def test_id_is_kept_by_default(self) -> None:
        assert Projection("title").to_native() == {"title": 1, "_id": 1}

    def test_coerce_keeps_a_field_name_whole(self) -> None:
        assert Projection.coerce("price").fields == ("price",)
        assert Projection.coerce(["title", "price"]).fields == ("title", "price")
        projection = Projection("title", include_id=False)
        assert Projection.coerce(projection) is projection

    def test_empty_projection_is_rejected(self) -> None:
        with pytest.raises(InvalidSpecError, match="at least one field"):
            Projection(())


def test_comparison_to_native() -> None:
    assert Gt(1950).to_native() == {"$gt": 1950}
    assert In(("Fiction", "Fantasy")).to_native() == {"$in": ["Fiction", "Fantasy"]}


@pytest.mark.parametrize("name", ["", "   ", "$where", 42])
def test_check_field_name_rejects_unusable_names(name: object) -> None:
    with pytest.raises(InvalidSpecError, match="build_query"):
        check_field_name(name, operation="build_query")
