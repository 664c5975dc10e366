"""
SQLite database utilities for the store module.

Connections are never shared: every helper here opens, uses and closes its
own handles so the process holds no descriptors between operations.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import (
    StatementError,
    StoreConnectionError,
    StoreCreationError,
    StorageError,
    translate_sqlite_error,
)

logger = logging.getLogger(__name__)

TABLE_NAME = "fileHash"

SCHEMA_SQL = """
CREATE TABLE fileHash (
  hash TEXT NOT NULL PRIMARY KEY,
  filename TEXT,
  lastChecked INTEGER
)
"""

DEFAULT_TIMEOUT_SECONDS = 5.0


class Closeable(Protocol):
    def close(self) -> object: ...


@dataclass(frozen=True)
class StoreHandle:
    """Result of initialization: where the store lives and whether it is new."""

    path: Path
    created: bool = False
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS


def connect(db_path: str | Path, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> sqlite3.Connection:
    """Open a read-write connection to an existing store.

    The URI is opened with ``mode=rw`` so a missing file is reported instead
    of silently creating an empty database.
    """
    uri = f"{Path(db_path).resolve().as_uri()}?mode=rw"
    try:
        return sqlite3.connect(uri, uri=True, timeout=timeout)
    except sqlite3.Error as exc:
        raise StoreConnectionError(f"could not open database {db_path}: {exc}") from exc


def release(resource: Closeable, label: str) -> None:
    """Close *resource*, logging rather than raising on failure.

    Called from ``finally`` blocks, where raising would replace the error
    already propagating.
    """
    try:
        resource.close()
    except sqlite3.Error as exc:
        logger.error("Could not close the %s: %s", label, exc)


@contextmanager
def open_connection(
    db_path: str | Path, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> Iterator[sqlite3.Connection]:
    """Yield a connection that is closed on every exit path."""
    connection = connect(db_path, timeout=timeout)
    try:
        yield connection
    finally:
        release(connection, "database")


@contextmanager
def open_cursor(
    connection: sqlite3.Connection,
    sql: str,
    parameters: Sequence[object] = (),
    action: str = "execute statement",
) -> Iterator[sqlite3.Cursor]:
    """Execute one statement and yield its cursor, closing it afterwards."""
    try:
        cursor = connection.cursor()
    except sqlite3.Error as exc:
        raise translate_sqlite_error(exc, action) from exc
    try:
        try:
            _ = cursor.execute(sql, parameters)
        except sqlite3.Error as exc:
            raise translate_sqlite_error(exc, action) from exc
        except (UnicodeEncodeError, OverflowError) as exc:
            # parameter conversion fails before SQLite sees the statement
            raise StatementError(f"{action}: {exc}") from exc
        yield cursor
    finally:
        release(cursor, "cursor")


def _is_new_store(path: Path) -> bool:
    # SQLite treats a zero-byte file as an empty database
    return not path.exists() or path.stat().st_size == 0


def _create_table(connection: sqlite3.Connection) -> None:
    logger.info("Creating database table %s", TABLE_NAME)
    try:
        with connection:
            with open_cursor(connection, SCHEMA_SQL, action="create table"):
                pass
    except (StorageError, sqlite3.Error) as exc:
        raise StoreCreationError(f"error creating database table: {exc}") from exc
    logger.info("Table %s created", TABLE_NAME)


def initialize_database(
    db_path: str | Path, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> StoreHandle:
    """Create the SQLite database and schema if needed.

    An existing store is only opened once to prove it is reachable; its
    schema is assumed to be present.
    """
    path = Path(db_path)
    is_new = _is_new_store(path)
    if is_new:
        logger.info("Creating database %s", path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()
        except OSError as exc:
            raise StoreCreationError(f"could not create database file {path}: {exc}") from exc
        logger.info("Database created")

    try:
        with open_connection(path, timeout=timeout) as connection:
            if is_new:
                _create_table(connection)
    except StoreConnectionError as exc:
        if is_new:
            raise StoreCreationError(str(exc)) from exc
        raise

    return StoreHandle(path=path, created=is_new, timeout_seconds=timeout)
