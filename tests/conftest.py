"""Shared pytest fixtures for all tests."""

from typing import List

import pytest

from bansync.engine import SyncEngine
from bansync.events import EventBridge
from bansync.host import InMemoryBanList
from bansync.records import BannedIdentity
from bansync.store.sqlite_store import SQLiteStore


class RecordingSQLiteStore(SQLiteStore):
    """SQLiteStore that remembers every write batch it executes."""

    def __init__(self, database_path: str):
        super().__init__(database_path, timeout=1)
        self.batches = []
        self.connections_opened = 0
        self.connections_closed = 0

    def connect(self):
        handle = super().connect()
        self.connections_opened += 1
        return handle

    def close(self, handle):
        if handle is not None:
            self.connections_closed += 1
        super().close(handle)

    def execute(self, handle, statements):
        self.batches.append(list(statements))
        return super().execute(handle, statements)

    @property
    def write_sql(self) -> List[str]:
        return [statement.sql for batch in self.batches for statement in batch]


def remote_rows(store: SQLiteStore) -> set:
    """Rows of the shared table as (id, name, reason) tuples."""
    with store.connection() as handle:
        rows = store.query(handle, store.select_all_statement())
    return {(row["UserId"], row["Name"], row["Reason"]) for row in rows}


def seed_remote(store: SQLiteStore, records: List[BannedIdentity]) -> None:
    """Create the shared table holding exactly ``records``."""
    with store.connection() as handle:
        if not store.table_exists(handle):
            store.create_table(handle)
        if records:
            store.execute(handle, [store.upsert_statement(records)])


@pytest.fixture
def store(tmp_path):
    """
    Recording SQLite store backed by a temporary file.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        RecordingSQLiteStore instance
    """
    return RecordingSQLiteStore(str(tmp_path / "data" / "BanSync.db"))


@pytest.fixture
def host():
    """In-memory host ban list without persistence."""
    return InMemoryBanList()


@pytest.fixture
def engine(store, host):
    """SyncEngine over the temporary store and host."""
    return SyncEngine(store, host)


@pytest.fixture
def bridge(engine, host):
    """EventBridge registered as the host's listener."""
    event_bridge = EventBridge(engine)
    host.add_listener(event_bridge)
    return event_bridge
