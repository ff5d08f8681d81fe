"""
Immediate propagation of host-side ban changes.

The host calls into EventBridge from its ban/unban notifications. Each call
writes a single row to the shared table on its own short-lived connection,
without waiting for the next sync cycle.
"""

import logging

from bansync.engine import SyncEngine
from bansync.exceptions import BanSyncException, ConnectionError
from bansync.records import BannedIdentity

logger = logging.getLogger(__name__)


class EventBridge:
    """Turns host ban notifications into single-record writes."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self.store = engine.store

    def on_banned(self, user_id: str, name: str, reason: str) -> bool:
        """
        Upsert a ban made on this host.

        Returns:
            True if a row was written, False if already known or skipped
        """
        record = BannedIdentity(user_id, name, reason)

        with self.engine.lock:
            if self.engine.halted:
                logger.warning(f"Sync engine halted, ban not propagated [user_id={record.user_id}]")
                return False

            if not self.engine.bootstrapped:
                # First cycle has not provisioned the table yet; its push picks this up
                logger.debug(f"Ban deferred until first sync [user_id={record.user_id}]")
                return False

            if self.engine.snapshot_contains(record):
                logger.debug(f"Ban already synchronized [user_id={record.user_id}]")
                return False

            if not self._write(self.store.upsert_statement, [record], record.user_id):
                return False

            self.engine.remember(record)
            logger.info(f"Ban propagated [user_id={record.user_id}, name={record.name}]")
            return True

    def on_unbanned(self, user_id: str) -> bool:
        """
        Delete the shared row for a ban lifted on this host.

        Returns:
            True if a delete was issued, False if the id was not synchronized
        """
        with self.engine.lock:
            if self.engine.halted:
                logger.warning(f"Sync engine halted, unban not propagated [user_id={user_id}]")
                return False

            if not self.engine.bootstrapped:
                logger.debug(f"Unban deferred until first sync [user_id={user_id}]")
                return False

            known = self.engine.snapshot_get(user_id)
            if known is None:
                logger.debug(f"Unban for unsynchronized user ignored [user_id={user_id}]")
                return False

            if not self._write(self.store.delete_statement, [known.user_id], known.user_id):
                return False

            self.engine.forget(known.user_id)
            logger.info(f"Unban propagated [user_id={known.user_id}]")
            return True

    def _write(self, build, values, user_id: str) -> bool:
        try:
            statement = build(values)
            with self.store.connection() as handle:
                self.store.execute(handle, [statement])
        except ConnectionError as e:
            # Snapshot untouched, so the next push still carries this change
            logger.error(f"Could not propagate change for {user_id}, deferring to next cycle: {e}")
            return False
        except BanSyncException as e:
            self.engine.fail_closed(e)
            return False
        return True
