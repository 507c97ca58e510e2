"""Command line interface for the book catalog.

Usage:
    bookstore list --genre Fiction
    bookstore list --in-stock --after-year 2010 --fields title,author,price --no-id
    bookstore list --sort price:desc --page 2 --page-size 5
    bookstore update-price --title "The Alchemist" --price 15.99
    bookstore delete --title "Moby Dick"
    bookstore stats --by decade
    bookstore stats --average-price
    bookstore stats --top-authors 3
    bookstore create-indexes
    bookstore explain --title 1984
    bookstore seed --file books.json

Results are printed as JSON on stdout; diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from bookstore.catalog import BookCatalog
from bookstore.config import AppSettings, ConfigError, load_config
from bookstore.db.connection import ConnectionManager
from bookstore.errors import (
    DecodeError,
    InvalidSpecError,
    MissingDependencyError,
    QueryError,
    QueryTimeoutError,
    StoreConnectionError,
)
from bookstore.observability.logging import bootstrap_logging
from bookstore.query.specs import Gt, Page, Projection, SortSpec
from bookstore.records import ABSENT, BOOK_FIELDS, Book, DecodeResult, decode

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_USAGE = 2
EXIT_CONNECTION = 3
EXIT_TIMEOUT = 4
EXIT_STORE = 5
EXIT_DECODE = 6

DEFAULT_PAGE_SIZE = 5
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bookstore", description="Query the book catalog")
    parser.add_argument("--config", type=Path, help="JSON configuration file")
    parser.add_argument("--log-level", choices=LOG_LEVELS, type=str.upper, help="Log level")
    parser.add_argument("--log-format", choices=("json", "text"), help="Log output format")
    commands = parser.add_subparsers(dest="command", required=True)

    list_parser = commands.add_parser("list", help="Find books")
    list_parser.add_argument("--genre", help="Only books of this genre")
    list_parser.add_argument("--author", help="Only books by this author")
    list_parser.add_argument(
        "--after-year", type=int, help="Only books published strictly after this year"
    )
    list_parser.add_argument("--in-stock", action="store_true", help="Only books in stock")
    list_parser.add_argument("--fields", type=_field_list, help="Comma separated fields to return")
    list_parser.add_argument("--no-id", action="store_true", help="Leave out document ids")
    list_parser.add_argument(
        "--sort",
        action="append",
        type=_sort_key,
        metavar="FIELD[:desc]",
        help="Sort key, repeatable; earlier keys take precedence",
    )
    list_parser.add_argument("--page", type=_positive_int, help="1-based page number")
    list_parser.add_argument(
        "--page-size",
        type=_non_negative_int,
        default=DEFAULT_PAGE_SIZE,
        help=f"Books per page (default {DEFAULT_PAGE_SIZE})",
    )

    update_parser = commands.add_parser("update-price", help="Set the price of one book")
    update_parser.add_argument("--title", required=True)
    update_parser.add_argument("--price", required=True, type=_price)

    delete_parser = commands.add_parser("delete", help="Delete one book by title")
    delete_parser.add_argument("--title", required=True)

    stats_parser = commands.add_parser("stats", help="Aggregate reports")
    report = stats_parser.add_mutually_exclusive_group(required=True)
    report.add_argument("--by", choices=("genre", "author", "decade"), help="Count books per key")
    report.add_argument(
        "--average-price", action="store_true", help="Average price per genre"
    )
    report.add_argument(
        "--top-authors", type=_positive_int, metavar="N", help="Authors with the most books"
    )

    commands.add_parser("create-indexes", help="Create the title and author/year indexes")

    explain_parser = commands.add_parser(
        "explain", help="Compare a title lookup with and without indexes"
    )
    explain_parser.add_argument("--title", required=True)

    seed_parser = commands.add_parser("seed", help="Insert books from a JSON array file")
    seed_parser.add_argument("--file", required=True, type=Path)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_config(args.config)
    except ConfigError as exc:
        _print_error(exc)
        return EXIT_CONFIG

    bootstrap_logging(
        service=settings.service_name,
        level=args.log_level or settings.logging.level,
        log_format=args.log_format or settings.logging.format,
    )

    try:
        books = _load_seed_file(args.file) if args.command == "seed" else None
        return asyncio.run(_run(args, settings, books))
    except InvalidSpecError as exc:
        _print_error(exc)
        return EXIT_USAGE
    except StoreConnectionError as exc:
        _print_error(exc)
        return EXIT_CONNECTION
    except QueryTimeoutError as exc:
        _print_error(exc)
        return EXIT_TIMEOUT
    except DecodeError as exc:
        _print_error(exc)
        return EXIT_DECODE
    except QueryError as exc:
        _print_error(exc)
        return EXIT_STORE
    except MissingDependencyError as exc:
        _print_error(exc)
        return EXIT_CONFIG


async def _run(args: argparse.Namespace, settings: AppSettings, books: list[Book] | None) -> int:
    manager = ConnectionManager(settings.mongodb)
    async with manager.session() as connection:
        catalog = BookCatalog(
            connection, timeout_seconds=settings.mongodb.query_timeout_seconds
        )
        if args.command == "list":
            return await _cmd_list(catalog, args)
        if args.command == "update-price":
            modified = await catalog.update_price(args.title, args.price)
            book = await catalog.find_by_title(args.title)
            _print_json(
                {
                    "title": args.title,
                    "modified": modified,
                    "book": None if book is None else book_payload(book),
                }
            )
        elif args.command == "delete":
            deleted = await catalog.delete_by_title(args.title)
            _print_json({"title": args.title, "deleted": deleted})
        elif args.command == "stats":
            await _cmd_stats(catalog, args)
        elif args.command == "create-indexes":
            _print_json(await catalog.create_indexes())
        elif args.command == "explain":
            comparison = await catalog.explain_title(args.title)
            _print_json(comparison.to_dict())
        elif args.command == "seed":
            _print_json({"inserted": await catalog.seed(books or [])})
    return EXIT_OK


async def _cmd_list(catalog: BookCatalog, args: argparse.Namespace) -> int:
    filter: dict[str, Any] = {}
    if args.genre is not None:
        filter["genre"] = args.genre
    if args.author is not None:
        filter["author"] = args.author
    if args.after_year is not None:
        filter["published_year"] = Gt(args.after_year)
    if args.in_stock:
        filter["in_stock"] = True

    projection = None
    if args.fields:
        projection = Projection(tuple(args.fields), include_id=not args.no_id)
    elif args.no_id:
        projection = Projection(BOOK_FIELDS, include_id=False)

    sort = SortSpec.of(*args.sort) if args.sort else None
    page = None if args.page is None else Page.number(args.page, args.page_size)

    result = await catalog.find(filter, projection=projection, sort=sort, page=page)
    _print_json([book_payload(book) for book in result.records])
    return _report_failures(result)


async def _cmd_stats(catalog: BookCatalog, args: argparse.Namespace) -> None:
    # Rows rather than objects: a missing group key prints as null.
    if args.average_price:
        averages = await catalog.average_price_by_genre()
        _print_json([{"genre": genre, "average_price": price} for genre, price in averages.items()])
    elif args.top_authors is not None:
        authors = await catalog.top_authors(args.top_authors)
        _print_json([{"author": author, "books": books} for author, books in authors])
    else:
        counts = await catalog.stats(args.by)
        _print_json([{args.by: key, "books": books} for key, books in counts.items()])


def book_payload(book: Book) -> dict[str, Any]:
    """JSON-ready view of a book with absent fields left out."""
    payload: dict[str, Any] = {}
    if book.id is not ABSENT:
        payload["_id"] = str(book.id)
    for name in BOOK_FIELDS:
        value = getattr(book, name)
        if value is not ABSENT:
            payload[name] = value
    return payload


def _report_failures(result: DecodeResult) -> int:
    for failure in result.failures:
        _print_error(failure.error)
    return EXIT_OK if result.ok else EXIT_DECODE


def _load_seed_file(path: Path) -> list[Book]:
    try:
        with path.open(encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidSpecError("seed", None, f"cannot read {path}: {exc}") from exc

    if not isinstance(raw, list):
        raise InvalidSpecError("seed", None, f"{path} must contain a JSON array of books")
    books = []
    for index, document in enumerate(raw):
        try:
            books.append(decode(document))
        except DecodeError as exc:
            raise InvalidSpecError("seed", None, f"book #{index}: {exc.message}") from exc
    return books


def _print_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, default=_json_default, indent=2)
    sys.stdout.write("\n")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


def _print_error(exc: BaseException) -> None:
    print(f"error: {exc}", file=sys.stderr)


def _field_list(value: str) -> list[str]:
    fields = [part.strip() for part in value.split(",") if part.strip()]
    if not fields:
        raise argparse.ArgumentTypeError("expected at least one field name")
    return fields


def _sort_key(value: str) -> tuple[str, str]:
    field, _, direction = value.partition(":")
    direction = direction or "asc"
    if not field or direction.lower() not in {"asc", "desc"}:
        raise argparse.ArgumentTypeError(f"expected FIELD or FIELD:asc|desc, got {value!r}")
    return field, direction.lower()


def _price(value: str) -> Decimal:
    try:
        price = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid price: {value!r}") from exc
    if not price.is_finite() or price < 0:
        raise argparse.ArgumentTypeError(f"price must be a non-negative number: {value!r}")
    return price


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value!r}")
    return number


if __name__ == "__main__":
    sys.exit(main())
