"""
Store Module

Backing store access for the soak harness.

This module provides:
- Idempotent creation of the SQLite store and its fileHash table
- Per-operation connections that never outlive their call
- Hash lookup and upsert with a typed error taxonomy
"""

__version__ = "0.1.0"

from .database import StoreHandle, initialize_database
from .errors import (
    DecodeError,
    ExecutionError,
    StatementError,
    StorageError,
    StoreConnectionError,
    StoreCreationError,
)
from .repository import HashRecord, HashRepository, count_hashes, fetch_hash, lookup_hash, save_hash

__all__ = [
    "DecodeError",
    "ExecutionError",
    "HashRecord",
    "HashRepository",
    "StatementError",
    "StorageError",
    "StoreConnectionError",
    "StoreCreationError",
    "StoreHandle",
    "count_hashes",
    "fetch_hash",
    "initialize_database",
    "lookup_hash",
    "save_hash",
]
