"""
Ban reconciliation engine.

One SyncEngine per process owns the snapshot (the local ban list as of the
last reconciliation) and the connection handle of the cycle in flight.
A cycle walks an explicit state machine; ``step()`` performs exactly one
transition so the scheduler can yield between phases and tests can drive
phases directly:

    IDLE -> CONNECTING -> (first run, table created: bootstrap) -> APPLYING -> SCHEDULED
    IDLE -> CONNECTING -> PUSHING -> PULLING -> APPLYING -> SCHEDULED
    any  -> FAILED -> SCHEDULED
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from common.constants import KICK_MESSAGE_TEMPLATE
from bansync.bootstrap import bootstrap
from bansync.diff import BanDiff, compute_diff
from bansync.exceptions import (
    BanSyncException,
    ConnectionError,
    EngineHaltedError,
)
from bansync.host import BanListHost
from bansync.records import BannedIdentity, IdKey, id_key, normalize_user_id, unique_by_id
from bansync.store.base import Statement, StoreAdapter

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    PULLING = "pulling"
    APPLYING = "applying"
    PUSHING = "pushing"
    SCHEDULED = "scheduled"
    FAILED = "failed"


class SyncEngine:
    """
    Reconciles the host's ban list with the shared ``userbans`` table.

    Connection failures abort only the current cycle. Statement failures and
    malformed rows halt the engine for good: a sync engine that may have
    diverged must not keep writing.
    """

    def __init__(self, store: StoreAdapter, host: BanListHost):
        """
        Initialize the engine.

        Args:
            store: Adapter for the shared table
            host: Local ban list accessor
        """
        self.store = store
        self.host = host
        self.lock = threading.RLock()

        self.state = SyncState.IDLE
        self.halted = False
        self.bootstrapped = False
        self.last_error: Optional[str] = None
        self.last_diff: Optional[BanDiff] = None
        self.cycles_completed = 0

        self._handle: Any = None
        self._remote: List[BannedIdentity] = []
        self._snapshot: Dict[IdKey, BannedIdentity] = {}
        self._halt_callbacks: List[Callable[[Exception], None]] = []

        self._phases: Dict[SyncState, Callable[[], SyncState]] = {
            SyncState.IDLE: self._on_idle,
            SyncState.CONNECTING: self._on_connecting,
            SyncState.PUSHING: self._on_pushing,
            SyncState.PULLING: self._on_pulling,
            SyncState.APPLYING: self._on_applying,
            SyncState.SCHEDULED: self._on_scheduled,
            SyncState.FAILED: self._on_failed,
        }

        self.refresh_snapshot()
        logger.info(f"Sync engine initialized [store={store!r}, snapshot={len(self._snapshot)}]")

    # Snapshot access, shared with the event bridge under self.lock

    @property
    def snapshot(self) -> List[BannedIdentity]:
        with self.lock:
            return list(self._snapshot.values())

    @property
    def has_open_handle(self) -> bool:
        return self._handle is not None

    def refresh_snapshot(self) -> None:
        with self.lock:
            self._snapshot = {record.id_key: record for record in unique_by_id(self.host.list_banned())}

    def snapshot_contains(self, record: BannedIdentity) -> bool:
        with self.lock:
            return self._snapshot.get(record.id_key) == record

    def snapshot_get(self, user_id: str) -> Optional[BannedIdentity]:
        with self.lock:
            return self._snapshot.get(id_key(normalize_user_id(user_id)))

    def remember(self, record: BannedIdentity) -> None:
        with self.lock:
            self._snapshot.pop(record.id_key, None)
            self._snapshot[record.id_key] = record

    def forget(self, user_id: str) -> Optional[BannedIdentity]:
        with self.lock:
            return self._snapshot.pop(id_key(normalize_user_id(user_id)), None)

    # State machine

    def step(self) -> SyncState:
        """
        Run the current phase and move to the next state.

        Returns:
            The new state

        Raises:
            EngineHaltedError: If the engine was halted by a fatal error
        """
        with self.lock:
            if self.halted:
                raise EngineHaltedError("Sync engine is halted")

            previous = self.state
            try:
                next_state = self._phases[previous]()
            except ConnectionError as e:
                next_state = self._abort_cycle(e)
            except BanSyncException as e:
                self.fail_closed(e)
                next_state = SyncState.FAILED

            if previous is not next_state:
                logger.debug(f"Sync state {previous.value} -> {next_state.value}")
            self.state = next_state
            return next_state

    def run_cycle(self) -> Optional[BanDiff]:
        """
        Step until the cycle reaches SCHEDULED or the engine halts.

        Returns:
            Diff applied by the cycle, or None if it did not reach APPLYING
        """
        with self.lock:
            if self.halted:
                raise EngineHaltedError("Sync engine is halted")

            self.last_diff = None
            if self.state is SyncState.SCHEDULED:
                self.step()

            while not self.halted:
                if self.step() is SyncState.SCHEDULED:
                    break

            return self.last_diff

    def _on_idle(self) -> SyncState:
        return SyncState.CONNECTING

    def _on_connecting(self) -> SyncState:
        self._handle = self.store.connect()

        if self.bootstrapped:
            return SyncState.PUSHING

        result = bootstrap(self.store, self._handle, self.host.list_banned())
        self.bootstrapped = True
        if result.created:
            self._remote = result.remote_rows
            return SyncState.APPLYING
        # Snapshot dates from startup, so the push carries only changes made since
        return SyncState.PUSHING

    def _on_pushing(self) -> SyncState:
        current = unique_by_id(self.host.list_banned())
        diff = compute_diff(self.snapshot, current)
        logger.debug(f"Push diff against snapshot: {diff}")

        if diff.is_empty:
            return SyncState.PULLING

        statements = self.push_statements(diff)
        rows_affected = self.store.execute(self._handle, statements)
        logger.info(
            f"Pushed {len(diff.added)} bans and {len(diff.removed)} unbans "
            f"[rows_affected={rows_affected}]"
        )

        if rows_affected > 0:
            self.refresh_snapshot()
        return SyncState.PULLING

    def push_statements(self, diff: BanDiff) -> List[Statement]:
        """
        Statements mirroring ``diff`` onto the shared table, deletes first.

        Ids removed and re-added under another name are only upserted, so the
        replacement row is never deleted by the same batch.
        """
        statements = []
        readded = diff.readded_ids
        removed_ids = [record.user_id for record in diff.removed if record.id_key not in readded]

        if removed_ids:
            statements.append(self.store.delete_statement(removed_ids))
        if diff.added:
            statements.append(self.store.upsert_statement(diff.added))
        return statements

    def _on_pulling(self) -> SyncState:
        rows = self.store.query(self._handle, self.store.select_all_statement())
        self._remote = [BannedIdentity.from_row(row) for row in rows]
        logger.debug(f"Pulled {len(self._remote)} bans from {self.store.table_name}")
        return SyncState.APPLYING

    def _on_applying(self) -> SyncState:
        diff = self.apply_remote(self._remote)
        self._remote = []
        self._close_handle()
        self.cycles_completed += 1
        self.last_error = None
        return SyncState.SCHEDULED

    def apply_remote(self, remote: List[BannedIdentity]) -> BanDiff:
        """
        Bring the local ban list in line with the remote rows.

        Removals run first so an id renamed remotely is banned under its new
        name instead of being lifted. Snapshot entries are updated before the
        host is touched, so host notifications raised by these changes find
        them already reconciled.

        Returns:
            Diff between the snapshot and ``remote``
        """
        with self.lock:
            diff = compute_diff(self.snapshot, remote)
            self.last_diff = diff
            logger.debug(f"Apply diff against snapshot: {diff}")

            if diff.is_empty:
                return diff

            readded = diff.readded_ids
            local = {record.diff_key for record in self.host.list_banned()}

            for record in diff.removed:
                self.forget(record.user_id)
                if record.id_key not in readded:
                    self.host.unban(record.user_id)
                    logger.info(f"Ban lifted by remote [user_id={record.user_id}, name={record.name}]")

            for record in diff.added:
                self.remember(record)
                if record.diff_key in local:
                    continue

                self.host.ban(record.user_id, record.name, record.reason)
                logger.info(f"Ban applied from remote [user_id={record.user_id}, name={record.name}]")

                if self.host.is_connected(record.user_id):
                    self.host.disconnect(record.user_id, KICK_MESSAGE_TEMPLATE.format(reason=record.reason))

            self.host.save()
            self.refresh_snapshot()
            logger.debug(f"Snapshot refreshed [size={len(self._snapshot)}]")
            return diff

    def _on_scheduled(self) -> SyncState:
        return SyncState.IDLE

    def _on_failed(self) -> SyncState:
        self._close_handle()
        return SyncState.SCHEDULED

    # Failure handling and teardown

    def _abort_cycle(self, error: Exception) -> SyncState:
        logger.error(f"Sync cycle aborted, retrying next cycle: {error}")
        self.last_error = str(error)
        self._remote = []
        self._close_handle()
        return SyncState.FAILED

    def add_halt_callback(self, callback: Callable[[Exception], None]) -> None:
        self._halt_callbacks.append(callback)

    def fail_closed(self, error: Exception) -> None:
        """
        Halt the engine after an unrecoverable error.

        Ban synchronization stays stopped for this process until restart.
        """
        with self.lock:
            if self.halted:
                return
            logger.error(f"Unrecoverable sync error, unloading sync engine: {error}", exc_info=error)
            self.last_error = str(error)
            self.halted = True
            self.state = SyncState.FAILED
            self.unload()

        for callback in self._halt_callbacks:
            callback(error)

    def unload(self) -> None:
        """Drop the in-flight cycle and close any open handle."""
        with self.lock:
            self._remote = []
            self._close_handle()
            if not self.halted:
                self.state = SyncState.IDLE
        logger.info("Sync engine unloaded")

    def _close_handle(self) -> None:
        handle, self._handle = self._handle, None
        self.store.close(handle)
