"""
Store adapter interface for the shared ban table.

Both backends expose the same connect/query/execute/close contract. Dialect
differences (placeholders, upsert verb, id column type) stay inside the
concrete adapters; callers only ever see Statement objects and row dicts.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Generator, Iterable, List, Sequence, Tuple

from common.constants import BAN_TABLE_NAME
from bansync.records import BannedIdentity, ROW_COLUMNS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Statement:
    """A parameter-bound SQL statement."""
    sql: str
    params: Tuple[Any, ...] = ()

    def __str__(self) -> str:
        return f"{self.sql} ({len(self.params)} params)"


class StoreAdapter(ABC):
    """
    Base class for the backing stores of the ``userbans`` table.

    Subclasses provide the connection factory, the table-existence check,
    the DDL and the driver error translation. Statement building and
    DB-API cursor handling live here.
    """

    backend_name = "abstract"
    placeholder = "?"
    upsert_verb = "INSERT OR REPLACE INTO"
    table_name = BAN_TABLE_NAME

    @abstractmethod
    def connect(self) -> Any:
        """
        Open a new connection handle.

        Raises:
            ConnectionError: If the backend cannot be reached
        """

    @abstractmethod
    def table_exists(self, handle: Any) -> bool:
        """Whether the ban table is present in the store."""

    @abstractmethod
    def create_table_statement(self) -> Statement:
        """DDL for the ban table in this backend's dialect."""

    @abstractmethod
    def _translate_error(self, error: Exception, statement: Statement) -> Exception:
        """Map a driver exception onto ConnectionError or QueryError."""

    @abstractmethod
    def _driver_errors(self) -> Tuple[type, ...]:
        """Exception types raised by the underlying driver."""

    def _bind_id(self, user_id: str) -> Any:
        """Value bound for the UserId column."""
        return user_id

    def close(self, handle: Any) -> None:
        """Close a connection handle. Safe to call with None."""
        if handle is None:
            return
        try:
            handle.close()
        except self._driver_errors() as e:
            logger.warning(f"Error closing {self.backend_name} connection: {e}")

    @contextmanager
    def connection(self) -> Generator[Any, None, None]:
        """
        Context manager for one-off store access.
        """
        handle = self.connect()
        try:
            yield handle
        finally:
            self.close(handle)

    def create_table(self, handle: Any) -> None:
        self.execute(handle, [self.create_table_statement()])
        logger.info(f"Created table {self.table_name} [backend={self.backend_name}]")

    def query(self, handle: Any, statement: Statement) -> List[Dict[str, Any]]:
        """
        Run a read statement.

        Returns:
            Rows as dictionaries keyed by column name
        """
        logger.debug(f"Query: {statement}")
        try:
            cursor = handle.cursor()
            try:
                cursor.execute(statement.sql, statement.params)
                rows = cursor.fetchall()
            finally:
                cursor.close()
        except self._driver_errors() as e:
            raise self._translate_error(e, statement) from e

        return [dict(row) for row in rows]

    def execute(self, handle: Any, statements: Sequence[Statement]) -> int:
        """
        Run a batch of write statements in a single transaction.

        Returns:
            Total rows affected across the batch
        """
        if not statements:
            return 0

        rows_affected = 0
        current = statements[0]
        try:
            cursor = handle.cursor()
            try:
                for current in statements:
                    logger.debug(f"Execute: {current}")
                    cursor.execute(current.sql, current.params)
                    if cursor.rowcount and cursor.rowcount > 0:
                        rows_affected += cursor.rowcount
            finally:
                cursor.close()
            handle.commit()
        except self._driver_errors() as e:
            self._rollback(handle)
            raise self._translate_error(e, current) from e

        return rows_affected

    def _rollback(self, handle: Any) -> None:
        try:
            handle.rollback()
        except self._driver_errors() as e:
            logger.warning(f"Rollback failed on {self.backend_name} connection: {e}")

    def select_all_statement(self) -> Statement:
        columns = ", ".join(ROW_COLUMNS)
        return Statement(f"SELECT {columns} FROM {self.table_name}")

    def upsert_statement(self, records: Iterable[BannedIdentity]) -> Statement:
        """
        Single insert-or-replace statement for every record, keyed by UserId.
        """
        records = list(records)
        if not records:
            raise ValueError("upsert_statement requires at least one record")

        row_placeholders = "(" + ", ".join([self.placeholder] * len(ROW_COLUMNS)) + ")"
        params: List[Any] = []
        for record in records:
            params.extend((self._bind_id(record.user_id), record.name, record.reason))

        values = ", ".join([row_placeholders] * len(records))
        columns = ", ".join(ROW_COLUMNS)
        return Statement(
            f"{self.upsert_verb} {self.table_name} ({columns}) VALUES {values}",
            tuple(params),
        )

    def delete_statement(self, user_ids: Iterable[str]) -> Statement:
        """
        Single delete statement for every id.
        """
        bound = [self._bind_id(user_id) for user_id in user_ids]
        if not bound:
            raise ValueError("delete_statement requires at least one id")

        markers = ", ".join([self.placeholder] * len(bound))
        return Statement(
            f"DELETE FROM {self.table_name} WHERE UserId IN ({markers})",
            tuple(bound),
        )
