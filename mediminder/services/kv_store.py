import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol

from mediminder.db.db_config import get_sqlite_connection


class KeyValueStore(Protocol):
    """String keys to string (JSON) values, the way the mobile client's storage works."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def multi_remove(self, keys: Iterable[str]) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def multi_remove(self, keys: Iterable[str]) -> None:
        for k in keys:
            self.data.pop(k, None)


class SqliteKeyValueStore:
    """Single-table SQLite store; blocking calls run in a worker thread."""

    def __init__(self, db_path: Optional[Path] = None, conn: Optional[sqlite3.Connection] = None):
        self._conn = conn or get_sqlite_connection(db_path)
        self._lock = threading.Lock()
        with self._lock:
            self._conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
            self._conn.commit()

    def _get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            self._conn.commit()

    def _multi_remove(self, keys) -> None:
        with self._lock:
            self._conn.executemany("DELETE FROM kv WHERE key = ?", [(k,) for k in keys])
            self._conn.commit()

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        await asyncio.to_thread(self._multi_remove, list(keys))

    def close(self) -> None:
        with self._lock:
            self._conn.close()
