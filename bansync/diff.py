"""Set difference between two ban lists."""

from dataclasses import dataclass, field
from typing import Iterable, List, Set

from bansync.records import BannedIdentity, IdKey, sort_key, unique_by_id


@dataclass
class BanDiff:
    """
    Result of comparing an old ban list against a new one.

    A record whose name changed shows up in both ``added`` and ``removed``.
    """
    added: List[BannedIdentity] = field(default_factory=list)
    removed: List[BannedIdentity] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed

    @property
    def readded_ids(self) -> Set[IdKey]:
        """Ids removed under one name and added back under another."""
        added_ids = {record.id_key for record in self.added}
        return {record.id_key for record in self.removed if record.id_key in added_ids}

    def __str__(self) -> str:
        return f"BanDiff(added={len(self.added)}, removed={len(self.removed)})"


def _missing_from(source: List[BannedIdentity], other: List[BannedIdentity]) -> List[BannedIdentity]:
    index = {record.diff_key for record in other}
    return sorted((record for record in source if record.diff_key not in index), key=sort_key)


def compute_diff(old: Iterable[BannedIdentity], new: Iterable[BannedIdentity]) -> BanDiff:
    """
    Compute which bans appeared and which disappeared between two lists.

    Args:
        old: Baseline ban list
        new: Current ban list

    Returns:
        BanDiff with records of ``new`` absent from ``old`` as ``added`` and
        records of ``old`` absent from ``new`` as ``removed``, both sorted
    """
    old_records = unique_by_id(old)
    new_records = unique_by_id(new)

    return BanDiff(
        added=_missing_from(new_records, old_records),
        removed=_missing_from(old_records, new_records),
    )
