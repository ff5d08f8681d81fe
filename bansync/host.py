"""
Host-side ban list.

The sync engine reads and writes the local ban list only through the
BanListHost contract. InMemoryBanList is the in-process implementation used
by the service entry point; it persists to a JSON file on save().
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Set, Tuple

from common.constants import KICK_MESSAGE_TEMPLATE
from bansync.records import BannedIdentity, IdKey, id_key, normalize_user_id

logger = logging.getLogger(__name__)


class BanListHost(ABC):
    """Contract the host environment exposes to the sync engine."""

    @abstractmethod
    def list_banned(self) -> List[BannedIdentity]:
        """Current local ban list."""

    @abstractmethod
    def ban(self, user_id: str, name: str, reason: str) -> None:
        """Add or replace a local ban."""

    @abstractmethod
    def unban(self, user_id: str) -> None:
        """Lift a local ban. Unknown ids are ignored."""

    @abstractmethod
    def is_connected(self, user_id: str) -> bool:
        """Whether the identity currently has a live session."""

    @abstractmethod
    def disconnect(self, user_id: str, message: str) -> None:
        """Forcibly end the identity's session showing ``message``."""

    def save(self) -> None:
        """Persist the local ban list. No-op unless the host keeps one."""


class BanEventListener(Protocol):
    def on_banned(self, user_id: str, name: str, reason: str) -> None: ...

    def on_unbanned(self, user_id: str) -> None: ...


class InMemoryBanList(BanListHost):
    """
    Thread-safe local ban list with optional JSON persistence.

    ``ban``/``unban`` are the raw mutations used by the sync engine.
    ``ban_user``/``unban_user`` are the host-originated actions: they also
    kick connected users and notify registered listeners.
    """

    def __init__(self, path: Optional[Path] = None):
        """
        Initialize the ban list.

        Args:
            path: JSON file to load from and save to (None keeps it in memory)
        """
        self.path = Path(path) if path else None
        self._lock = threading.RLock()
        self._bans: Dict[IdKey, BannedIdentity] = {}
        self._connected: Set[IdKey] = set()
        self._listeners: List[BanEventListener] = []
        self.disconnections: List[Tuple[str, str]] = []

        if self.path is not None:
            self._load_from_disk()

    def _load_from_disk(self) -> None:
        if not self.path.exists():
            return

        try:
            with open(self.path, 'r') as f:
                entries = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Could not read ban list {self.path}: {e}")
            return

        for entry in entries:
            record = BannedIdentity(entry["user_id"], entry.get("name", ""), entry.get("reason", ""))
            self._bans[record.id_key] = record

        logger.info(f"Loaded {len(self._bans)} bans from {self.path}")

    def add_listener(self, listener: BanEventListener) -> None:
        self._listeners.append(listener)

    def list_banned(self) -> List[BannedIdentity]:
        with self._lock:
            return list(self._bans.values())

    def is_banned(self, user_id: str) -> bool:
        with self._lock:
            return id_key(normalize_user_id(user_id)) in self._bans

    def get(self, user_id: str) -> Optional[BannedIdentity]:
        with self._lock:
            return self._bans.get(id_key(normalize_user_id(user_id)))

    def ban(self, user_id: str, name: str, reason: str) -> None:
        record = BannedIdentity(user_id, name, reason)
        with self._lock:
            self._bans.pop(record.id_key, None)
            self._bans[record.id_key] = record
        logger.debug(f"Local ban set [user_id={record.user_id}]")

    def unban(self, user_id: str) -> None:
        with self._lock:
            self._bans.pop(id_key(normalize_user_id(user_id)), None)
        logger.debug(f"Local ban lifted [user_id={user_id}]")

    def connect(self, user_id: str) -> None:
        """Register a live session for ``user_id``."""
        with self._lock:
            self._connected.add(id_key(normalize_user_id(user_id)))

    def is_connected(self, user_id: str) -> bool:
        with self._lock:
            return id_key(normalize_user_id(user_id)) in self._connected

    def disconnect(self, user_id: str, message: str) -> None:
        with self._lock:
            self._connected.discard(id_key(normalize_user_id(user_id)))
            self.disconnections.append((normalize_user_id(user_id), message))
        logger.info(f"Disconnected user {user_id}: {message}")

    def save(self) -> None:
        if self.path is None:
            return

        with self._lock:
            entries = [record.to_dict() for record in self._bans.values()]

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(entries, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save ban list {self.path}: {e}", exc_info=True)
            raise

    def ban_user(self, user_id: str, name: str, reason: str) -> BannedIdentity:
        """
        Ban a user from the host side.

        Kicks the user if connected, persists the list and notifies listeners.
        """
        self.ban(user_id, name, reason)
        record = self.get(user_id)

        if self.is_connected(record.user_id):
            self.disconnect(record.user_id, KICK_MESSAGE_TEMPLATE.format(reason=reason))

        self.save()
        for listener in self._listeners:
            listener.on_banned(record.user_id, name, reason)
        return record

    def unban_user(self, user_id: str) -> bool:
        """
        Unban a user from the host side.

        Returns:
            False if the user was not banned
        """
        if not self.is_banned(user_id):
            return False

        self.unban(user_id)
        self.save()
        for listener in self._listeners:
            listener.on_unbanned(normalize_user_id(user_id))
        return True
