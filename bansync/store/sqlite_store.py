"""Embedded SQLite file store."""

import logging
import sqlite3
from pathlib import Path
from typing import Tuple

from common.constants import CONNECT_TIMEOUT_SECONDS
from bansync.exceptions import ConnectionError, QueryError
from bansync.store.base import Statement, StoreAdapter

logger = logging.getLogger(__name__)

_UNAVAILABLE_MARKERS = ("database is locked", "unable to open database", "disk i/o error")


class SQLiteStore(StoreAdapter):
    """
    Ban table kept in a local SQLite database file.

    Ids are stored as TEXT with NOCASE collation so textual ids match
    case-insensitively in lookups and deletes.
    """

    backend_name = "sqlite"
    placeholder = "?"
    upsert_verb = "INSERT OR REPLACE INTO"

    def __init__(self, database_path: str, timeout: float = CONNECT_TIMEOUT_SECONDS):
        self.database_path = database_path
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        db_path = Path(self.database_path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(db_path), timeout=self.timeout, check_same_thread=False)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Couldn't open the SQLite database {self.database_path}: {e}")
            raise ConnectionError(f"Couldn't open the SQLite database {self.database_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        logger.debug(f"Opened SQLite database {self.database_path}")
        return conn

    def table_exists(self, handle: sqlite3.Connection) -> bool:
        rows = self.query(
            handle,
            Statement(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                (self.table_name,),
            ),
        )
        return len(rows) > 0

    def create_table_statement(self) -> Statement:
        return Statement(
            f"""
            CREATE TABLE {self.table_name} (
                UserId TEXT NOT NULL COLLATE NOCASE PRIMARY KEY,
                Name TEXT NOT NULL,
                Reason TEXT NOT NULL
            )
            """
        )

    def _driver_errors(self) -> Tuple[type, ...]:
        return (sqlite3.Error,)

    def _translate_error(self, error: Exception, statement: Statement) -> Exception:
        message = str(error)
        if isinstance(error, sqlite3.OperationalError) and any(
            marker in message.lower() for marker in _UNAVAILABLE_MARKERS
        ):
            return ConnectionError(f"SQLite database unavailable: {message}")
        return QueryError(f"SQLite statement failed: {message}", sql=statement.sql)

    def __repr__(self) -> str:
        return f"SQLiteStore({self.database_path!r})"
