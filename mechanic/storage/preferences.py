"""
Preference Store — the host's hierarchical preference storage.

Nodes are addressed by path ("/instance/org.eclipse.ui"), fields by key.
Reconcilers and the gated import task write into it; it is shared with
the host and never owned by a task.
"""

import sqlite3
from typing import Dict, List, Optional, Tuple


class BackingStoreError(Exception):
    """Raised when preference or settings changes cannot be durably committed."""
    pass


class PreferenceStore:
    """Interface for a preference store. Values are strings; absent is None."""

    def get(self, path: str, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, path: str, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, path: str, key: str) -> None:
        raise NotImplementedError

    def keys(self, path: str) -> List[str]:
        raise NotImplementedError

    def flush(self) -> None:
        """Durably commit pending changes. Raises BackingStoreError."""
        raise NotImplementedError


def normalize_path(path: str) -> str:
    """Collapse duplicate and trailing slashes so "/a//b/" and "/a/b" are one node."""
    parts = [p for p in path.split("/") if p]
    return "/" + "/".join(parts)


class MemoryPreferenceStore(PreferenceStore):
    """
    Dict-backed store. `fail_flush` makes flush() raise, which lets callers
    exercise the repair-failure path.
    """

    def __init__(self, fail_flush: bool = False):
        self._nodes: Dict[str, Dict[str, str]] = {}
        self.fail_flush = fail_flush
        self.flush_count = 0

    def get(self, path: str, key: str) -> Optional[str]:
        return self._nodes.get(normalize_path(path), {}).get(key)

    def put(self, path: str, key: str, value: str) -> None:
        if value is None:
            raise ValueError(f"Cannot store None for {path}/{key}")
        self._nodes.setdefault(normalize_path(path), {})[key] = value

    def remove(self, path: str, key: str) -> None:
        self._nodes.get(normalize_path(path), {}).pop(key, None)

    def keys(self, path: str) -> List[str]:
        return sorted(self._nodes.get(normalize_path(path), {}))

    def flush(self) -> None:
        if self.fail_flush:
            raise BackingStoreError("Preference store is not writable")
        self.flush_count += 1


class SqlitePreferenceStore(PreferenceStore):
    """
    SQLite-backed store. Writes are held in the open transaction until
    flush() commits them.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS preferences (
                path TEXT NOT NULL,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (path, key)
            )
        """)
        self._conn.commit()

    def get(self, path: str, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value FROM preferences WHERE path = ? AND key = ?",
            (normalize_path(path), key),
        ).fetchone()
        return row[0] if row else None

    def put(self, path: str, key: str, value: str) -> None:
        if value is None:
            raise ValueError(f"Cannot store None for {path}/{key}")
        self._conn.execute(
            "INSERT OR REPLACE INTO preferences (path, key, value) VALUES (?, ?, ?)",
            (normalize_path(path), key, value),
        )

    def remove(self, path: str, key: str) -> None:
        self._conn.execute(
            "DELETE FROM preferences WHERE path = ? AND key = ?",
            (normalize_path(path), key),
        )

    def keys(self, path: str) -> List[str]:
        rows = self._conn.execute(
            "SELECT key FROM preferences WHERE path = ? ORDER BY key",
            (normalize_path(path),),
        ).fetchall()
        return [r[0] for r in rows]

    def items(self) -> List[Tuple[str, str, str]]:
        rows = self._conn.execute(
            "SELECT path, key, value FROM preferences ORDER BY path, key"
        ).fetchall()
        return [tuple(r) for r in rows]

    def flush(self) -> None:
        try:
            self._conn.commit()
        except sqlite3.Error as e:
            raise BackingStoreError(f"Couldn't flush preferences: {e}") from e

    def close(self) -> None:
        self._conn.close()
