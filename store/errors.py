"""
Storage error hierarchy.

Every Gateway operation raises a subclass of StorageError, chained to the
underlying sqlite3 or OS exception.
"""

from __future__ import annotations

import sqlite3

__all__ = [
    "StorageError",
    "StoreCreationError",
    "StoreConnectionError",
    "StatementError",
    "ExecutionError",
    "DecodeError",
    "translate_sqlite_error",
]


class StorageError(Exception):
    """Root exception for backing store failures."""


class StoreCreationError(StorageError):
    """Raised when the store file or its schema cannot be created."""


class StoreConnectionError(StorageError):
    """Raised when the store cannot be opened for an operation."""


class StatementError(StorageError):
    """Raised when a statement cannot be prepared or its parameters bound."""


class ExecutionError(StorageError):
    """Raised when a prepared statement fails while running."""


class DecodeError(StorageError):
    """Raised when a result row does not have the expected shape."""


# OperationalError messages that SQLite emits while compiling a statement
_PREPARE_FAILURES = (
    "no such table",
    "no such column",
    "syntax error",
    "near ",
    "incomplete input",
)


def translate_sqlite_error(exc: sqlite3.Error, action: str) -> StorageError:
    """Map a sqlite3 exception raised by *action* onto the storage taxonomy."""
    message = f"{action}: {exc}"
    if isinstance(exc, (sqlite3.ProgrammingError, sqlite3.InterfaceError)):
        return StatementError(message)
    if isinstance(exc, sqlite3.OperationalError):
        lowered = str(exc).lower()
        if lowered.startswith(_PREPARE_FAILURES):
            return StatementError(message)
    return ExecutionError(message)
