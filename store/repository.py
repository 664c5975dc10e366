"""
SQLite-backed hash repository.

Each function is one independent unit of work: it opens its own
connection, runs a single statement and closes everything before
returning, whether it succeeds or raises.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .database import DEFAULT_TIMEOUT_SECONDS, StoreHandle, open_connection, open_cursor
from .errors import DecodeError, translate_sqlite_error

logger = logging.getLogger(__name__)

SELECT_SQL = "SELECT hash, filename, lastChecked FROM fileHash WHERE hash = ?"

UPSERT_SQL = """
INSERT INTO fileHash (hash, filename, lastChecked)
VALUES (?, ?, ?)
ON CONFLICT(hash) DO UPDATE SET
  filename = excluded.filename,
  lastChecked = excluded.lastChecked
"""

COUNT_SQL = "SELECT COUNT(*) FROM fileHash"

TIMESTAMP_FORMAT = "%m/%d/%y %H:%M:%S"


@dataclass(frozen=True)
class HashRecord:
    hash: str
    filename: str | None
    last_checked: int

    @classmethod
    def from_row(cls, row: Sequence[object]) -> "HashRecord":
        if len(row) != 3:
            raise DecodeError(f"could not read DB row: expected 3 columns, got {len(row)}")
        try:
            return cls(
                hash=_require_str(row[0], "hash"),
                filename=_optional_str(row[1], "filename"),
                last_checked=_require_int(row[2], "lastChecked"),
            )
        except ValueError as exc:
            raise DecodeError(f"could not read DB row: {exc}") from exc

    def format_checked(self, fmt: str = TIMESTAMP_FORMAT) -> str:
        """Local-time rendering of last_checked; out-of-range values print raw."""
        try:
            return datetime.fromtimestamp(self.last_checked).strftime(fmt)
        except (OverflowError, OSError, ValueError):
            return str(self.last_checked)


def _require_str(value: object, field: str) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        raise ValueError(f"{field} is required")
    raise ValueError(f"{field} must be a str, got {type(value).__name__}")


def _optional_str(value: object, field: str) -> str | None:
    if value is None:
        return None
    return _require_str(value, field)


def _require_int(value: object, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an int")
    if isinstance(value, int):
        return value
    if value is None:
        raise ValueError(f"{field} is required")
    raise ValueError(f"{field} must be an int, got {type(value).__name__}")


def fetch_hash(
    db_path: str | Path, key: str, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> HashRecord | None:
    """Return the stored row for *key*, or None when it is absent."""
    with open_connection(db_path, timeout=timeout) as connection:
        with open_cursor(connection, SELECT_SQL, (key,), "check database for hash") as cursor:
            try:
                row = cursor.fetchone()
            except sqlite3.Error as exc:
                raise translate_sqlite_error(exc, "read hash row") from exc

    if row is None:
        return None
    record = HashRecord.from_row(row)
    logger.debug(
        "Found hash %s (file=%s, checked=%s)",
        record.hash,
        record.filename,
        record.format_checked(),
    )
    return record


def lookup_hash(db_path: str | Path, key: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> bool:
    """True if a row for *key* exists."""
    return fetch_hash(db_path, key, timeout=timeout) is not None


def save_hash(
    db_path: str | Path,
    key: str,
    filename: str,
    checked_at: int | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> None:
    """Insert or overwrite the row for *key*.

    The write runs in its own transaction: on failure it is rolled back and
    any existing row keeps its previous values.
    """
    if checked_at is None:
        checked_at = int(time.time())
    with open_connection(db_path, timeout=timeout) as connection:
        try:
            with connection:
                with open_cursor(
                    connection, UPSERT_SQL, (key, filename, checked_at), "save hash to database"
                ):
                    pass
        except sqlite3.Error as exc:
            raise translate_sqlite_error(exc, "commit hash") from exc

    logger.debug("Saved hash to database (hash=%s, file=%s)", key, filename)


def count_hashes(db_path: str | Path, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> int:
    """Number of rows in the table."""
    with open_connection(db_path, timeout=timeout) as connection:
        with open_cursor(connection, COUNT_SQL, action="count hashes") as cursor:
            try:
                row = cursor.fetchone()
            except sqlite3.Error as exc:
                raise translate_sqlite_error(exc, "read row count") from exc
    if row is None:
        raise DecodeError("could not read row count")
    try:
        return _require_int(row[0], "count")
    except ValueError as exc:
        raise DecodeError(f"could not read row count: {exc}") from exc


class HashRepository:
    """Gateway bound to a single store file.

    Holds only the path and a clock; every call still opens and closes its
    own connection.
    """

    def __init__(
        self,
        store: StoreHandle | str | Path,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if isinstance(store, StoreHandle):
            self.db_path: Path = store.path
            self.timeout: float = store.timeout_seconds
        else:
            self.db_path = Path(store)
            self.timeout = DEFAULT_TIMEOUT_SECONDS
        self.clock: Callable[[], float] = clock or time.time

    def lookup(self, key: str) -> bool:
        return lookup_hash(self.db_path, key, timeout=self.timeout)

    def fetch(self, key: str) -> HashRecord | None:
        return fetch_hash(self.db_path, key, timeout=self.timeout)

    def save(self, key: str, filename: str) -> int:
        """Upsert *key* and return the timestamp written."""
        checked_at = int(self.clock())
        save_hash(self.db_path, key, filename, checked_at=checked_at, timeout=self.timeout)
        return checked_at

    def count(self) -> int:
        return count_hashes(self.db_path, timeout=self.timeout)
