"""Configuration management for BanSync."""

import json
import logging
import os
import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

from common.constants import (
    API_HOST,
    API_PORT,
    CONNECT_TIMEOUT_SECONDS,
    DEFAULT_BAN_LIST_PATH,
    DEFAULT_CONFIG_PATH,
    DEFAULT_SQLITE_DATABASE,
    MYSQL_DEFAULT_PORT,
    PUSH_DELAY_SECONDS,
)
from bansync.exceptions import ConfigError

logger = logging.getLogger(__name__)


class BackendKind(str, Enum):
    SQLITE = "sqlite"
    MYSQL = "mysql"


class Config:
    """Manages the sync engine configuration stored in a JSON file."""

    DEFAULT_CONFIG = {
        "data_store_type": BackendKind.SQLITE.value,
        "sqlite_database": DEFAULT_SQLITE_DATABASE,
        "mysql_host": "localhost",
        "mysql_port": MYSQL_DEFAULT_PORT,
        "mysql_database": "BanSync",
        "mysql_user": "root",
        "mysql_password": "password",
        "push_delay_seconds": PUSH_DELAY_SECONDS,
        "connect_timeout_seconds": CONNECT_TIMEOUT_SECONDS,
        "ban_list_path": DEFAULT_BAN_LIST_PATH,
        "api_host": API_HOST,
        "api_port": API_PORT,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (defaults to BANSYNC_CONFIG_PATH
                or ./data/bansync.json)
        """
        if config_path is None:
            config_path = Path(os.environ.get("BANSYNC_CONFIG_PATH", DEFAULT_CONFIG_PATH))
        self.config_path = Path(config_path)
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        A file that cannot be parsed is copied to ``<name>.json.bak`` and
        replaced by the defaults.

        Returns:
            Configuration dictionary
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                if not isinstance(data, dict):
                    raise ValueError("configuration root must be an object")
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (json.JSONDecodeError, ValueError, OSError) as e:
                logger.warning(f"Corrupt configuration {self.config_path}, restoring defaults: {e}")
                backup_path = self.config_path.with_suffix('.json.bak')
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError as copy_error:
                    logger.warning(f"Could not back up configuration: {copy_error}")

        config = self.DEFAULT_CONFIG.copy()
        self._write(config)
        logger.debug("Default configuration loaded")
        return config

    def _write(self, data: dict) -> None:
        try:
            with open(self.config_path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not write configuration {self.config_path}: {e}")

    def save(self) -> None:
        """Save current configuration to file."""
        self._write(self.data)

    def get_backend_kind(self) -> BackendKind:
        """
        Get the configured store backend.

        Raises:
            ConfigError: If data_store_type names an unknown backend
        """
        value = self.data.get("data_store_type", BackendKind.SQLITE.value)
        # Older configs stored the backend as 0 (SQLite) / 1 (MySQL)
        if value in (0, 1):
            return BackendKind.SQLITE if value == 0 else BackendKind.MYSQL
        try:
            return BackendKind(str(value).lower())
        except ValueError:
            raise ConfigError(f"Unsupported data_store_type: {value!r}")

    def get_sqlite_path(self) -> str:
        """
        Get SQLite database path, resolved next to the config file when relative.
        """
        path = Path(self.data.get("sqlite_database", DEFAULT_SQLITE_DATABASE))
        if not path.is_absolute():
            path = self.config_path.parent / path
        return str(path)

    def get_mysql_settings(self) -> dict:
        """
        Get MySQL connection settings.

        Returns:
            Dictionary with 'host', 'port', 'database', 'user' and 'password'
        """
        return {
            "host": self.data.get("mysql_host", "localhost"),
            "port": int(self.data.get("mysql_port", MYSQL_DEFAULT_PORT)),
            "database": self.data.get("mysql_database", "BanSync"),
            "user": self.data.get("mysql_user", "root"),
            "password": self.data.get("mysql_password", ""),
        }

    def get_push_delay(self) -> float:
        return float(self.data.get("push_delay_seconds", PUSH_DELAY_SECONDS))

    def get_connect_timeout(self) -> int:
        return int(self.data.get("connect_timeout_seconds", CONNECT_TIMEOUT_SECONDS))

    def get_ban_list_path(self) -> Path:
        path = Path(self.data.get("ban_list_path", DEFAULT_BAN_LIST_PATH))
        if not path.is_absolute():
            path = self.config_path.parent / path
        return path

    def get_api_address(self) -> tuple:
        return self.data.get("api_host", API_HOST), int(self.data.get("api_port", API_PORT))
