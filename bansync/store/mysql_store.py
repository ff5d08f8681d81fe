"""Networked MySQL store using PyMySQL."""

import logging
from typing import Any, Tuple

import pymysql
import pymysql.cursors

from common.constants import CONNECT_TIMEOUT_SECONDS, MYSQL_DEFAULT_PORT
from bansync.exceptions import ConnectionError, DataShapeError, QueryError
from bansync.records import is_numeric_id
from bansync.store.base import Statement, StoreAdapter

logger = logging.getLogger(__name__)

# Client/server error codes meaning the server was never reached or went away
_CONNECTION_ERROR_CODES = {
    1044,  # access denied to database
    1045,  # access denied for user
    1049,  # unknown database
    2002,  # can't connect through socket
    2003,  # can't connect to server
    2005,  # unknown host
    2006,  # server has gone away
    2013,  # lost connection during query
}


class MySQLStore(StoreAdapter):
    """
    Ban table kept on a MySQL server shared by every process.

    UserId is a BIGINT UNSIGNED column, so only numeric ids can be stored.
    """

    backend_name = "mysql"
    placeholder = "%s"
    upsert_verb = "REPLACE INTO"

    def __init__(
        self,
        host: str,
        database: str,
        user: str,
        password: str,
        port: int = MYSQL_DEFAULT_PORT,
        connect_timeout: int = CONNECT_TIMEOUT_SECONDS,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.connect_timeout = connect_timeout

    def connect(self) -> Any:
        try:
            conn = pymysql.connect(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database,
                connect_timeout=self.connect_timeout,
                charset="utf8mb4",
                autocommit=False,
                cursorclass=pymysql.cursors.DictCursor,
            )
        except pymysql.MySQLError as e:
            logger.error(f"Couldn't open the MySQL database {self.database} at {self.host}:{self.port}: {e}")
            raise ConnectionError(
                f"Couldn't open the MySQL database {self.database} at {self.host}:{self.port}: {e}"
            ) from e

        logger.debug(f"Opened MySQL connection to {self.host}:{self.port}/{self.database}")
        return conn

    def table_exists(self, handle: Any) -> bool:
        rows = self.query(
            handle,
            Statement(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = %s AND table_name = %s",
                (self.database, self.table_name),
            ),
        )
        return len(rows) > 0

    def create_table_statement(self) -> Statement:
        return Statement(
            f"""
            CREATE TABLE {self.table_name} (
                UserId BIGINT UNSIGNED NOT NULL PRIMARY KEY,
                Name TEXT NOT NULL,
                Reason LONGTEXT NOT NULL
            )
            """
        )

    def _bind_id(self, user_id: str) -> int:
        if not is_numeric_id(user_id):
            raise DataShapeError(f"MySQL store requires numeric user ids, got {user_id!r}")
        return int(user_id)

    def _driver_errors(self) -> Tuple[type, ...]:
        return (pymysql.MySQLError,)

    def _translate_error(self, error: Exception, statement: Statement) -> Exception:
        code = error.args[0] if error.args and isinstance(error.args[0], int) else None
        if isinstance(error, pymysql.err.InterfaceError) or code in _CONNECTION_ERROR_CODES:
            return ConnectionError(f"MySQL server unavailable: {error}")
        return QueryError(f"MySQL statement failed: {error}", sql=statement.sql)

    def __repr__(self) -> str:
        return f"MySQLStore({self.user}@{self.host}:{self.port}/{self.database})"
