"""Shared test fixtures."""

import sqlite3
from collections.abc import Iterator

import pytest

from nook.core.database.schema import open_database
from nook.core.projects import ProjectService
from nook.core.service import TreeService
from nook.core.store.memory import MemoryNodeStore, MemoryProjectStore
from nook.core.store.sqlite import SqliteNodeStore, SqliteProjectStore
from nook.protocols import NodeStore
from tests.unit.fakes import OWNER, PROJECT, FakeClock, RecordingStore, sequential_ids


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_000)


@pytest.fixture
def memory_store() -> MemoryNodeStore:
    return MemoryNodeStore()


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    connection = open_database(":memory:")
    yield connection
    connection.close()


@pytest.fixture(params=["memory", "sqlite"])
def node_store(request: pytest.FixtureRequest, conn: sqlite3.Connection) -> NodeStore:
    """Every node store adapter that runs without a network."""
    if request.param == "memory":
        return MemoryNodeStore()
    return SqliteNodeStore(conn)


@pytest.fixture
def recording(memory_store: MemoryNodeStore) -> RecordingStore:
    return RecordingStore(memory_store)


@pytest.fixture
def tree(recording: RecordingStore, clock: FakeClock) -> TreeService:
    """TreeService over a recorded in-memory store, with ids n1, n2, ..."""
    return TreeService(
        recording,
        owner_id=OWNER,
        project_id=PROJECT,
        clock=clock,
        id_factory=sequential_ids("n"),
    )


@pytest.fixture
def sqlite_tree(conn: sqlite3.Connection, clock: FakeClock) -> TreeService:
    return TreeService(
        SqliteNodeStore(conn),
        owner_id=OWNER,
        project_id=PROJECT,
        clock=clock,
        id_factory=sequential_ids("s"),
    )


@pytest.fixture(params=["memory", "sqlite"])
def projects(
    request: pytest.FixtureRequest, conn: sqlite3.Connection, clock: FakeClock
) -> ProjectService:
    if request.param == "memory":
        return ProjectService(
            MemoryProjectStore(), owner_id=OWNER, nodes=MemoryNodeStore(), clock=clock
        )
    return ProjectService(
        SqliteProjectStore(conn), owner_id=OWNER, nodes=SqliteNodeStore(conn), clock=clock
    )
