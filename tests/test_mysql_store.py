"""Tests for the MySQL store adapter with the driver mocked out."""

from unittest.mock import MagicMock, patch

import pymysql
import pytest

from bansync.exceptions import ConnectionError, DataShapeError, QueryError
from bansync.records import BannedIdentity
from bansync.store.mysql_store import MySQLStore


@pytest.fixture
def mysql_store():
    return MySQLStore(host="db.internal", database="BanSync", user="sync", password="secret", port=3307)


@pytest.fixture
def mock_conn():
    conn = MagicMock()
    cursor = MagicMock()
    cursor.rowcount = 2
    conn.cursor.return_value = cursor
    return conn


class TestMySQLStatements:
    """Test MySQL dialect statements."""

    def test_upsert_uses_replace_and_numeric_ids(self, mysql_store):
        statement = mysql_store.upsert_statement([
            BannedIdentity("76561198000000001", "a", "r1"),
            BannedIdentity("2", "b", "r2"),
        ])

        assert statement.sql == "REPLACE INTO userbans (UserId, Name, Reason) VALUES (%s, %s, %s), (%s, %s, %s)"
        assert statement.params == (76561198000000001, "a", "r1", 2, "b", "r2")

    def test_delete_binds_integers(self, mysql_store):
        statement = mysql_store.delete_statement(["5", "9"])
        assert statement.sql == "DELETE FROM userbans WHERE UserId IN (%s, %s)"
        assert statement.params == (5, 9)

    def test_textual_id_rejected(self, mysql_store):
        with pytest.raises(DataShapeError):
            mysql_store.upsert_statement([BannedIdentity("Alice", "a")])

    def test_unicode_digit_id_rejected(self, mysql_store):
        with pytest.raises(DataShapeError):
            mysql_store.delete_statement(["²"])

    def test_create_table_uses_bigint_key(self, mysql_store):
        assert "UserId BIGINT UNSIGNED NOT NULL PRIMARY KEY" in mysql_store.create_table_statement().sql


class TestMySQLConnection:
    """Test connection and error translation."""

    def test_connect_passes_settings(self, mysql_store, mock_conn):
        with patch("bansync.store.mysql_store.pymysql.connect", return_value=mock_conn) as connect:
            handle = mysql_store.connect()

        assert handle is mock_conn
        kwargs = connect.call_args.kwargs
        assert kwargs["host"] == "db.internal"
        assert kwargs["port"] == 3307
        assert kwargs["database"] == "BanSync"
        assert kwargs["cursorclass"] is pymysql.cursors.DictCursor
        assert kwargs["autocommit"] is False

    def test_unreachable_server_raises_connection_error(self, mysql_store):
        error = pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        with patch("bansync.store.mysql_store.pymysql.connect", side_effect=error):
            with pytest.raises(ConnectionError):
                mysql_store.connect()

    def test_table_exists_queries_information_schema(self, mysql_store, mock_conn):
        mock_conn.cursor.return_value.fetchall.return_value = [{"table_name": "userbans"}]

        assert mysql_store.table_exists(mock_conn) is True

        sql, params = mock_conn.cursor.return_value.execute.call_args.args
        assert "information_schema.tables" in sql
        assert params == ("BanSync", "userbans")

    def test_execute_commits_batch(self, mysql_store, mock_conn):
        statements = [
            mysql_store.delete_statement(["1"]),
            mysql_store.upsert_statement([BannedIdentity("2", "b")]),
        ]

        affected = mysql_store.execute(mock_conn, statements)

        assert affected == 4
        assert mock_conn.cursor.return_value.execute.call_count == 2
        mock_conn.commit.assert_called_once()
        mock_conn.rollback.assert_not_called()

    def test_statement_failure_is_query_error(self, mysql_store, mock_conn):
        mock_conn.cursor.return_value.execute.side_effect = pymysql.err.ProgrammingError(
            1064, "You have an error in your SQL syntax"
        )

        with pytest.raises(QueryError) as exc_info:
            mysql_store.execute(mock_conn, [mysql_store.delete_statement(["1"])])

        assert exc_info.value.sql.startswith("DELETE FROM userbans")
        mock_conn.rollback.assert_called_once()

    def test_lost_connection_is_connection_error(self, mysql_store, mock_conn):
        mock_conn.cursor.return_value.execute.side_effect = pymysql.err.OperationalError(
            2013, "Lost connection to MySQL server during query"
        )

        with pytest.raises(ConnectionError):
            mysql_store.query(mock_conn, mysql_store.select_all_statement())

    def test_pulled_rows_with_integer_ids(self, mysql_store, mock_conn):
        mock_conn.cursor.return_value.fetchall.return_value = [
            {"UserId": 76561198000000001, "Name": "a", "Reason": "r"},
        ]

        rows = mysql_store.query(mock_conn, mysql_store.select_all_statement())

        assert BannedIdentity.from_row(rows[0]).to_row() == ("76561198000000001", "a", "r")
