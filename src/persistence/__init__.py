"""Persistence subsystem exports."""

from persistence.cache import CacheResult, StageCache
from persistence.sqlite_store import SqliteStore

__all__ = ["CacheResult", "SqliteStore", "StageCache"]
