"""MongoDB fixtures for end-to-end integration tests."""

from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from contextlib import suppress
from uuid import uuid4

import pytest

from bookstore.config.models import MongoDbSettings
from bookstore.db.connection import Connection, ConnectionManager


def _require_docker() -> None:
    docker = pytest.importorskip("docker")
    try:
        client = docker.from_env()
        client.ping()
    except Exception as exc:  # pragma: no cover - environment dependent
        pytest.skip(f"Docker is not available for integration tests: {exc}")


@pytest.fixture(scope="session")
def mongodb_endpoint() -> Iterator[tuple[str, str]]:
    external_uri = os.getenv("BOOKSTORE_MONGODB__URI")
    database = os.getenv("BOOKSTORE_MONGODB__DATABASE", "bookstore_integration_test")
    if external_uri:
        yield external_uri, database
        return

    _require_docker()
    DockerContainer = pytest.importorskip("testcontainers.core.container").DockerContainer
    image = os.getenv("BOOKSTORE_MONGODB_IMAGE", "mongo:7")
    container = DockerContainer(image).with_exposed_ports(27017)

    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Could not start MongoDB container: {exc}")

    try:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(27017)
        yield f"mongodb://{host}:{port}", database
    finally:
        with suppress(Exception):
            container.stop()


@pytest.fixture
def mongodb_settings(mongodb_endpoint: tuple[str, str]) -> MongoDbSettings:
    uri, database = mongodb_endpoint
    return MongoDbSettings(
        uri=uri,
        database=database,
        collection=f"books_{uuid4().hex[:12]}",
        server_selection_timeout_ms=10_000,
    )


@pytest.fixture
async def live_connection(mongodb_settings: MongoDbSettings) -> AsyncIterator[Connection]:
    async with ConnectionManager(mongodb_settings).session() as connection:
        try:
            yield connection
        finally:
            await connection.collection().drop()
