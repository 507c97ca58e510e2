"""Scoped MongoDB connections backed by the Motor async client."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from bookstore.config.models import MongoDbSettings
from bookstore.db._translate import translate_error
from bookstore.errors import MissingDependencyError, QueryError, StoreConnectionError
from bookstore.observability._observable import ObservableMixin
from bookstore.observability.metrics import MetricsRecorder

logger = logging.getLogger(__name__)


def _import_motor_asyncio() -> Any:
    try:
        from motor import motor_asyncio
    except ImportError as exc:  # pragma: no cover - exercised when motor is absent
        raise MissingDependencyError(
            "MongoDB access requires 'motor'. Install with: pip install bookstore-queries"
        ) from exc
    return motor_asyncio


@dataclass(slots=True)
class Connection(ObservableMixin):
    """An acquired session to one database and its book collection.

    Runs at most one logical operation at a time: store calls go through
    :meth:`operation`, which serialises them in issue order.
    """

    _client: Any
    _database: Any
    database_name: str
    collection_name: str
    ping_timeout_seconds: float = 2.0
    _metrics: MetricsRecorder | None = None
    _closed: bool = False
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def client(self) -> Any:
        """Expose underlying Motor client for advanced usage."""
        return self._client

    @property
    def database(self) -> Any:
        return self._database

    @property
    def is_open(self) -> bool:
        return not self._closed

    def collection(self, name: str | None = None) -> Any:
        """Return a collection handle, the book collection by default."""
        return self._database[self.collection_name if name is None else name]

    @asynccontextmanager
    async def operation(self, name: str) -> AsyncIterator[Connection]:
        """Hold the connection exclusively for one logical operation."""
        self._ensure_open(name)
        async with self._lock:
            self._ensure_open(name)
            yield self

    async def ping(self) -> bool:
        """Run MongoDB ping command."""
        started = perf_counter()
        try:
            async with self.operation("ping"):
                await asyncio.wait_for(
                    self._database.command("ping"),
                    timeout=self.ping_timeout_seconds,
                )
        except Exception as exc:
            error = translate_error(exc, operation="ping", collection=self.collection_name)
            self._observe_error("ping", started, error)
            raise error from exc

        self._observe_operation("ping", started, success=True)
        return True

    async def close(self) -> None:
        """Close the Motor client. Safe to call more than once."""
        if self._closed:
            return
        started = perf_counter()
        try:
            self._client.close()
        except Exception as exc:
            error = translate_error(exc, operation="close", collection=self.collection_name)
            self._observe_error("close", started, error)
            raise error from exc
        finally:
            self._closed = True

        self._observe_operation("close", started, success=True)

    def _ensure_open(self, operation: str) -> None:
        if self._closed:
            raise StoreConnectionError(operation, self.collection_name, "connection was released")


@dataclass(slots=True)
class ConnectionManager:
    """Acquires and releases :class:`Connection` objects for one endpoint.

    Example usage::

        manager = ConnectionManager(settings.mongodb)
        async with manager.session() as connection:
            books = await Executor(connection).execute(build_query({"genre": "Fiction"}))
    """

    settings: MongoDbSettings
    metrics: MetricsRecorder | None = None

    async def acquire(self) -> Connection:
        """Open a client and verify the server answers a ping.

        Raises:
            StoreConnectionError: If the client cannot be created or the
                server does not answer within the configured timeouts.
        """
        settings = self.settings
        endpoint = f"{settings.host}:{settings.port}" if settings.uri is None else "<uri>"
        motor_asyncio = _import_motor_asyncio()
        try:
            client = motor_asyncio.AsyncIOMotorClient(
                settings.connection_uri(),
                serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
                connectTimeoutMS=settings.connect_timeout_ms,
                appname=settings.app_name,
            )
        except Exception as exc:
            raise StoreConnectionError(
                "connect", settings.collection, f"invalid endpoint {endpoint}: {exc}"
            ) from exc

        connection = Connection(
            _client=client,
            _database=client[settings.database],
            database_name=settings.database,
            collection_name=settings.collection,
            ping_timeout_seconds=(
                settings.server_selection_timeout_ms + settings.connect_timeout_ms
            )
            / 1000,
            _metrics=self.metrics,
        )
        try:
            await connection.ping()
        except QueryError as exc:
            await connection.close()
            raise StoreConnectionError(
                "connect",
                settings.collection,
                f"cannot reach MongoDB at {endpoint}: {exc.message}",
            ) from exc

        logger.info(
            "Connected to MongoDB",
            extra={"endpoint": endpoint, "database": settings.database},
        )
        return connection

    async def release(self, connection: Connection) -> None:
        """Close ``connection``; releasing twice is a no-op."""
        if not connection.is_open:
            return
        await connection.close()
        logger.info("Connection closed", extra={"database": connection.database_name})

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Connection]:
        """Acquire a connection released on every exit path."""
        connection = await self.acquire()
        try:
            yield connection
        finally:
            await self.release(connection)
