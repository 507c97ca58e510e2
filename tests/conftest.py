"""Shared fixtures: an in-memory Motor stack wired into the connection module."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

import bookstore.db.connection as connection_module
from bookstore.config.models import MongoDbSettings
from bookstore.db.connection import Connection
from bookstore.observability.metrics import NoopMetricsRecorder, set_metrics_recorder
from tests.fakes import FakeCollection, FakeDatabase, FakeMongoClient, FakeMotorAsyncioModule


@pytest.fixture(autouse=True)
def _reset_metrics_recorder() -> Iterator[None]:
    yield
    set_metrics_recorder(NoopMetricsRecorder())


@pytest.fixture
def database() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def books(database: FakeDatabase) -> FakeCollection:
    return database["books"]


@pytest.fixture
def client(database: FakeDatabase) -> FakeMongoClient:
    return FakeMongoClient(database)


@pytest.fixture
def fake_motor(
    client: FakeMongoClient, monkeypatch: pytest.MonkeyPatch
) -> FakeMotorAsyncioModule:
    fake = FakeMotorAsyncioModule(client)
    monkeypatch.setattr(connection_module, "_import_motor_asyncio", lambda: fake)
    return fake


@pytest.fixture
def settings() -> MongoDbSettings:
    return MongoDbSettings(app_name="bookstore-tests")


@pytest.fixture
def connection(client: FakeMongoClient, database: FakeDatabase) -> Connection:
    return Connection(
        _client=client,
        _database=database,
        database_name="plp_bookstore",
        collection_name="books",
    )
