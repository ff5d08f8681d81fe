"""
First-run provisioning of the shared ban table.

When no process has created ``userbans`` yet, the first one to connect
creates it and seeds it with its own local bans. Otherwise the existing
remote contents win and are pulled by the normal cycle.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Sequence

from bansync.records import BannedIdentity, unique_by_id
from bansync.store.base import StoreAdapter

logger = logging.getLogger(__name__)


@dataclass
class BootstrapResult:
    """
    Outcome of bootstrapping.

    Attributes:
        created: True if the table was created by this call
        remote_rows: Seeded rows when created (empty otherwise)
    """
    created: bool
    remote_rows: List[BannedIdentity] = field(default_factory=list)


def bootstrap(
    store: StoreAdapter,
    handle: Any,
    local_bans: Sequence[BannedIdentity],
) -> BootstrapResult:
    """
    Make sure the ban table exists, seeding it from the local list if new.

    Args:
        store: Store adapter owning ``handle``
        handle: Open connection handle
        local_bans: Current local ban list

    Returns:
        BootstrapResult; when ``created`` the remote contents equal
        ``local_bans`` and no pull is needed
    """
    if store.table_exists(handle):
        logger.debug(f"Table {store.table_name} already present")
        return BootstrapResult(created=False)

    logger.info(f"Table {store.table_name} not found, creating it from the local ban list")
    store.create_table(handle)

    seed = unique_by_id(local_bans)
    rows_affected = 0
    if seed:
        rows_affected = store.execute(handle, [store.upsert_statement(seed)])

    logger.info(f"Seeded {store.table_name} with {len(seed)} bans [rows_affected={rows_affected}]")
    return BootstrapResult(created=True, remote_rows=seed)
