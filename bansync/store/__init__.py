"""Store adapters for the shared ban table."""

from bansync.config import BackendKind, Config
from bansync.store.base import Statement, StoreAdapter
from bansync.store.sqlite_store import SQLiteStore


def create_store(config: Config) -> StoreAdapter:
    """
    Build the store adapter selected by the configuration.

    Args:
        config: Loaded configuration

    Returns:
        SQLiteStore or MySQLStore instance
    """
    kind = config.get_backend_kind()

    if kind is BackendKind.MYSQL:
        from bansync.store.mysql_store import MySQLStore

        return MySQLStore(
            connect_timeout=config.get_connect_timeout(),
            **config.get_mysql_settings(),
        )

    return SQLiteStore(config.get_sqlite_path(), timeout=config.get_connect_timeout())


__all__ = [
    "Statement",
    "StoreAdapter",
    "SQLiteStore",
    "create_store",
]
