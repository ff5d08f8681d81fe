"""Custom exception classes for the sync engine."""

from typing import Optional


class BanSyncException(Exception):
    """
    Base exception class for all BanSync-related errors.
    """
    pass


class ConnectionError(BanSyncException):
    """
    Raised when the backing store cannot be reached or rejects the credentials.

    Aborts the current cycle only; the next scheduled cycle reconnects.
    """
    pass


class QueryError(BanSyncException):
    """
    Raised when the store is reachable but a statement failed.
    """

    def __init__(self, message: str, sql: Optional[str] = None):
        super().__init__(message)
        self.sql = sql

    def __str__(self) -> str:
        base = super().__str__()
        if self.sql:
            return f"{base} [sql={self.sql}]"
        return base


class DataShapeError(BanSyncException):
    """
    Raised when a row or record does not have the expected shape.
    """
    pass


class ConfigError(BanSyncException):
    """
    Raised when the configuration names an unsupported option.
    """
    pass


class EngineHaltedError(BanSyncException):
    """
    Raised when work is requested from an engine stopped by a fatal error.
    """
    pass


class BanNotFoundError(BanSyncException):
    """
    Raised when unbanning a user that is not on the local ban list.
    """
    pass
