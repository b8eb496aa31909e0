"""
Settings Store — the mechanic's own key-value settings.

Holds bookkeeping such as the last imported timestamp and fingerprint of
each gated import task. Records for removed tasks are never cleaned up.
"""

import sqlite3
from typing import Dict, Union

from mechanic.storage.preferences import BackingStoreError


def lastmod_key(task_id: str) -> str:
    return f"{task_id}_lastmod"


def md5_key(task_id: str) -> str:
    return f"{task_id}_lastmd5"


class SettingsStore:
    """Interface for a key-value settings store."""

    def get_string(self, key: str, default: str = "") -> str:
        raise NotImplementedError

    def get_long(self, key: str, default: int = 0) -> int:
        raise NotImplementedError

    def set_string(self, key: str, value: str) -> None:
        raise NotImplementedError

    def set_long(self, key: str, value: int) -> None:
        raise NotImplementedError


class MemorySettingsStore(SettingsStore):
    def __init__(self):
        self._values: Dict[str, Union[str, int]] = {}

    def get_string(self, key: str, default: str = "") -> str:
        value = self._values.get(key)
        return default if value is None else str(value)

    def get_long(self, key: str, default: int = 0) -> int:
        value = self._values.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def set_string(self, key: str, value: str) -> None:
        self._values[key] = value

    def set_long(self, key: str, value: int) -> None:
        self._values[key] = int(value)

    def __contains__(self, key: str) -> bool:
        return key in self._values


class SqliteSettingsStore(SettingsStore):
    """Settings persisted in SQLite. Every write commits immediately."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def _get(self, key: str):
        row = self._conn.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        try:
            self._conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )
            self._conn.commit()
        except sqlite3.Error as e:
            raise BackingStoreError(f"Couldn't write setting {key}: {e}") from e

    def get_string(self, key: str, default: str = "") -> str:
        value = self._get(key)
        return default if value is None else value

    def get_long(self, key: str, default: int = 0) -> int:
        value = self._get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    def set_string(self, key: str, value: str) -> None:
        self._set(key, value)

    def set_long(self, key: str, value: int) -> None:
        self._set(key, str(int(value)))

    def close(self) -> None:
        self._conn.close()
