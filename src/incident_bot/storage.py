"""Persistence for the set of incident identifiers already notified."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol

from . import config

LOGGER = logging.getLogger(__name__)

SEEN_IDS_KEY = "seen_incident_ids"

SCHEMA = """
CREATE TABLE IF NOT EXISTS properties (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""


class PropertyStore(Protocol):
    """String-keyed, string-valued persistent store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


@contextmanager
def connect(path: str) -> Iterator[sqlite3.Connection]:
    """Context manager returning a SQLite connection that commits on success."""

    db_path = Path(path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(db_path)
    try:
        yield connection
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


class SQLitePropertyStore:
    """:class:`PropertyStore` backed by a single SQLite table."""

    def __init__(self, path: str) -> None:
        self.path = path
        with connect(path) as conn:
            conn.executescript(SCHEMA)

    def get(self, key: str) -> Optional[str]:
        with connect(self.path) as conn:
            row = conn.execute("SELECT value FROM properties WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with connect(self.path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO properties (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                """,
                (key, value),
            )

    def delete(self, key: str) -> None:
        with connect(self.path) as conn:
            conn.execute("DELETE FROM properties WHERE key = ?", (key,))


class SeenSet:
    """Insertion-ordered set of incident identifiers."""

    def __init__(self, ids: Iterable[str] = ()) -> None:
        # dict keeps insertion order and gives O(1) membership
        self._ids: Dict[str, None] = dict.fromkeys(ids)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def add(self, entry_id: str) -> bool:
        """Add ``entry_id``; return ``False`` if it was already present."""

        if entry_id in self._ids:
            return False
        self._ids[entry_id] = None
        return True

    def record_all(self, entry_ids: Iterable[str]) -> int:
        """Add identifiers in discovery order, returning how many were new."""

        return sum(1 for entry_id in entry_ids if self.add(entry_id))

    def newest(self, limit: int) -> List[str]:
        """Return at most ``limit`` identifiers, dropping the oldest first."""

        ids = list(self._ids)
        if limit <= 0:
            return []
        return ids[-limit:]


class SeenSetStore:
    """Loads and saves a :class:`SeenSet` as a JSON array under one key.

    A missing or unreadable value is treated as an empty set rather than an
    error, so a corrupted slot only costs one round of duplicate
    notifications.
    """

    def __init__(
        self,
        properties: PropertyStore,
        retention_limit: int = config.DEFAULT_RETENTION_LIMIT,
        key: str = SEEN_IDS_KEY,
    ) -> None:
        self.properties = properties
        self.retention_limit = retention_limit
        self.key = key

    def load(self) -> SeenSet:
        raw_value = self.properties.get(self.key)
        if raw_value is None:
            return SeenSet()
        try:
            data = json.loads(raw_value)
        except json.JSONDecodeError:
            LOGGER.warning("Ignoring unparsable seen-set value under %s", self.key)
            return SeenSet()
        if not isinstance(data, list):
            LOGGER.warning("Ignoring non-list seen-set value under %s", self.key)
            return SeenSet()
        return SeenSet(item for item in data if isinstance(item, str))

    def persist(self, seen: SeenSet) -> List[str]:
        """Write the newest ``retention_limit`` identifiers and return them."""

        retained = seen.newest(self.retention_limit)
        self.properties.set(self.key, json.dumps(retained))
        LOGGER.info("Persisted %d seen identifiers", len(retained))
        return retained

    def reset(self) -> None:
        self.properties.delete(self.key)
