"""Store implementations."""

from .base import Store, StoreTransaction
from .sqlite_store import SQLiteStore

__all__ = ["Store", "StoreTransaction", "SQLiteStore"]
