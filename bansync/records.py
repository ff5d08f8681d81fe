"""Banned identity value type and its equality rules."""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Tuple, Union

from bansync.exceptions import DataShapeError

IdKey = Union[int, str]

ROW_COLUMNS = ("UserId", "Name", "Reason")


def is_numeric_id(text: str) -> bool:
    """ASCII digits only; other Unicode digits such as superscripts are textual."""
    return text.isascii() and text.isdigit()


def _decode(value: bytes, field_name: str) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DataShapeError(f"Undecodable {field_name}: {value!r}") from e


def normalize_user_id(value: Any) -> str:
    """
    Canonical text form of a user id.

    Numeric ids lose leading zeros so "007" and 7 name the same identity.
    Textual ids keep their case; comparison folds it through id_key().
    """
    if isinstance(value, bool) or value is None:
        raise DataShapeError(f"Invalid user id: {value!r}")

    if isinstance(value, int):
        if value < 0:
            raise DataShapeError(f"Invalid user id: {value!r}")
        return str(value)

    if isinstance(value, bytes):
        value = _decode(value, "user id")

    if not isinstance(value, str):
        raise DataShapeError(f"Invalid user id type: {type(value).__name__}")

    text = value.strip()
    if not text:
        raise DataShapeError("Empty user id")

    if is_numeric_id(text):
        return str(int(text))
    return text


def id_key(user_id: str) -> IdKey:
    """Lookup key for an id: numeric by value, textual case-insensitive."""
    if is_numeric_id(user_id):
        return int(user_id)
    return user_id.casefold()


@dataclass(frozen=True, eq=False)
class BannedIdentity:
    """
    One banned entity.

    Two records are equal when their ids match (see id_key) and their names
    match exactly. The reason takes no part in equality, so editing only the
    reason of a ban never turns into an unban followed by a ban.
    """
    user_id: str
    name: str
    reason: str = ""
    _key: Tuple[IdKey, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        user_id = normalize_user_id(self.user_id)
        if not isinstance(self.name, str):
            raise DataShapeError(f"Invalid name for user {user_id}: {self.name!r}")
        if not isinstance(self.reason, str):
            raise DataShapeError(f"Invalid reason for user {user_id}: {self.reason!r}")

        object.__setattr__(self, "user_id", user_id)
        object.__setattr__(self, "_key", (id_key(user_id), self.name))

    @property
    def id_key(self) -> IdKey:
        return self._key[0]

    @property
    def diff_key(self) -> Tuple[IdKey, str]:
        return self._key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BannedIdentity):
            return NotImplemented
        return self._key == other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def to_row(self) -> Tuple[str, str, str]:
        return (self.user_id, self.name, self.reason)

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "name": self.name, "reason": self.reason}

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BannedIdentity":
        """
        Build a record from a ``userbans`` row.

        Args:
            row: Mapping with UserId, Name and Reason columns

        Raises:
            DataShapeError: If a column is missing or holds an unexpected type
        """
        try:
            user_id, name, reason = (row[column] for column in ROW_COLUMNS)
        except (KeyError, IndexError, TypeError) as e:
            raise DataShapeError(f"Malformed ban row {row!r}: missing column {e}") from e

        if isinstance(name, bytes):
            name = _decode(name, "name")
        if isinstance(reason, bytes):
            reason = _decode(reason, "reason")
        if name is None or reason is None:
            raise DataShapeError(f"Malformed ban row {dict(row)!r}: NULL column")

        return cls(user_id=user_id, name=name, reason=reason)


def unique_by_id(records: Iterable[BannedIdentity]) -> List[BannedIdentity]:
    """Drop duplicate ids, keeping the last record seen for each one."""
    index = {}
    for record in records:
        index.pop(record.id_key, None)
        index[record.id_key] = record
    return list(index.values())


def sort_key(record: BannedIdentity) -> Tuple[int, IdKey, str]:
    """Total order over records: numeric ids first, then textual, then name."""
    key = record.id_key
    return (0 if isinstance(key, int) else 1, key, record.name)
