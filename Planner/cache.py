"""
Caching layer for material trees with pluggable backends.

Trees are cached per list id and validated against a content hash of the
list's entries and recipe preferences plus the catalog version. An
in-memory backend serves a single session; the SQLite+Pickle backend keeps
trees across runs.
"""
from __future__ import annotations

import hashlib
import json
import pickle
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import ConfigError


@dataclass
class CacheMetadata:
    """Metadata about a cached entry."""
    source_hash: str
    timestamp: float
    version: str


@dataclass
class CacheEntry:
    """A cached data entry with metadata."""
    metadata: CacheMetadata
    data: Any


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Retrieve a cache entry by key."""

    @abstractmethod
    def set(self, key: str, entry: CacheEntry) -> None:
        """Store a cache entry."""

    @abstractmethod
    def invalidate(self, key: str) -> None:
        """Remove a cache entry."""

    @abstractmethod
    def clear(self) -> None:
        """Clear all cache entries."""


class MemoryCacheBackend(CacheBackend):
    """Process-local dictionary backend."""

    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteCacheBackend(CacheBackend):
    """
    SQLite + Pickle cache backend.

    Stores serialized trees in SQLite blob columns for atomic writes.
    Thread-safe via connection-per-thread.

    Schema:
        cache_entries (
            key TEXT PRIMARY KEY,
            source_hash TEXT,
            timestamp REAL,
            version TEXT,
            data BLOB
        )
    """

    _CREATE_TABLE_SQL = """
        CREATE TABLE IF NOT EXISTS cache_entries (
            key TEXT PRIMARY KEY,
            source_hash TEXT NOT NULL,
            timestamp REAL NOT NULL,
            version TEXT NOT NULL,
            data BLOB NOT NULL
        )
    """

    def __init__(self, db_path: Path):
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()

        # Initialize schema on first connection
        self._get_connection()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create a thread-local database connection."""
        if getattr(self._local, "conn", None) is None:
            self._local.conn = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
                timeout=10.0,
            )
            self._local.conn.execute(self._CREATE_TABLE_SQL)
            self._local.conn.commit()
        return self._local.conn

    def get(self, key: str) -> Optional[CacheEntry]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT source_hash, timestamp, version, data FROM cache_entries WHERE key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None

            source_hash, timestamp, version, data_blob = row
            data = pickle.loads(data_blob)
        except (sqlite3.Error, pickle.PickleError, AttributeError, EOFError):
            # Corrupt or written by an incompatible model version
            self.invalidate(key)
            return None
        return CacheEntry(
            metadata=CacheMetadata(source_hash=source_hash, timestamp=timestamp, version=version),
            data=data,
        )

    def set(self, key: str, entry: CacheEntry) -> None:
        """Store a cache entry (atomic upsert)."""
        conn = self._get_connection()
        data_blob = pickle.dumps(entry.data, protocol=pickle.HIGHEST_PROTOCOL)
        conn.execute(
            """
            INSERT OR REPLACE INTO cache_entries (key, source_hash, timestamp, version, data)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                key,
                entry.metadata.source_hash,
                entry.metadata.timestamp,
                entry.metadata.version,
                data_blob,
            ),
        )
        conn.commit()

    def invalidate(self, key: str) -> None:
        conn = self._get_connection()
        conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        conn.commit()

    def clear(self) -> None:
        conn = self._get_connection()
        conn.execute("DELETE FROM cache_entries")
        conn.commit()

    def close(self) -> None:
        """Close the database connection (optional cleanup)."""
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None


def compute_list_hash(entries: Iterable[Any], preferences: Optional[Mapping[str, int]] = None) -> str:
    """
    Deterministic SHA-256 over a list's entries and recipe preferences.

    Only fields that affect tree expansion are hashed (kind, entity id,
    quantity, explicit recipe), so renaming a list or regenerating entry ids
    keeps cached trees valid.
    """
    canonical = {
        "entries": [
            {
                "kind": entry.kind.value,
                "id": entry.entity_id,
                "quantity": entry.quantity,
                "recipe_id": getattr(entry, "recipe_id", None),
            }
            for entry in entries
        ],
        "preferences": sorted((preferences or {}).items()),
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class TreeCache:
    """
    High-level per-list cache of built material trees.

    Usage:
        cache = TreeCache()

        trees = cache.get_if_valid(list_id, content_hash, catalog.version)
        if trees is None:
            trees = build_trees(...)
            cache.store(list_id, content_hash, catalog.version, trees)
    """

    VERSION = "1.0"  # Increment when the node model changes

    def __init__(self, backend: Optional[CacheBackend] = None, enabled: bool = True):
        """
        Parameters
        ----------
        backend : CacheBackend, optional
            Cache backend to use. Defaults to MemoryCacheBackend.
        enabled : bool
            Whether caching is enabled. If False, always returns cache miss.
        """
        self._backend = backend or MemoryCacheBackend()
        self._enabled = enabled

    def _make_key(self, list_id: str) -> str:
        return f"material_trees_{list_id}"

    def _version_tag(self, catalog_version: str) -> str:
        return f"{self.VERSION}:{catalog_version}"

    def get_if_valid(self, list_id: str, content_hash: str, catalog_version: str) -> Optional[Any]:
        """
        Cached trees if the list content and catalog version still match.

        Stale entries are invalidated on the way out.
        """
        if not self._enabled:
            return None

        key = self._make_key(list_id)
        entry = self._backend.get(key)
        if entry is None:
            return None

        if (entry.metadata.version != self._version_tag(catalog_version)
                or entry.metadata.source_hash != content_hash):
            self._backend.invalidate(key)
            return None
        return entry.data

    def store(self, list_id: str, content_hash: str, catalog_version: str, data: Any) -> None:
        if not self._enabled:
            return
        entry = CacheEntry(
            metadata=CacheMetadata(
                source_hash=content_hash,
                timestamp=time.time(),
                version=self._version_tag(catalog_version),
            ),
            data=data,
        )
        self._backend.set(self._make_key(list_id), entry)

    def invalidate(self, list_id: str) -> None:
        """Manually invalidate the cached trees of one list."""
        self._backend.invalidate(self._make_key(list_id))

    def clear_all(self) -> None:
        """Clear every cached tree (catalog reload)."""
        self._backend.clear()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value


def create_cache_backend(name: str, path: Optional[Path] = None) -> CacheBackend:
    """Backend factory used by configuration: ``memory`` or ``sqlite``."""
    name = name.lower()
    if name == "memory":
        return MemoryCacheBackend()
    if name == "sqlite":
        if path is None:
            raise ConfigError("The sqlite cache backend needs a cache path")
        return SQLiteCacheBackend(path)
    raise ConfigError(f"Unknown cache backend: {name!r}")
