"""Local key-value persistence used by the watchlist."""

from __future__ import annotations

import json
import os
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Protocol

from ..config.settings import StorageBackend, StorageConfig
from ..monitoring.logger import get_logger
from ..utils.constants import utc_now


class KeyValueStore(Protocol):
    """Interface describing key-value backends (SQLite, JSON file, ...)."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


CREATE_KV_TABLE = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteKeyValueStore:
    """SQLite-backed key-value table. Every write is committed before returning."""

    def __init__(self, database_path: Path) -> None:
        self._database_path = Path(database_path).expanduser().resolve()
        self._initialize()

    @property
    def path(self) -> Path:
        return self._database_path

    def _initialize(self) -> None:
        self._database_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as con:
            con.execute(CREATE_KV_TABLE)
            con.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(self._database_path)
        try:
            yield con
        finally:
            con.close()

    def get(self, key: str) -> Optional[str]:
        with self._connect() as con:
            cur = con.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cur.fetchone()
        if row is None:
            return None
        return str(row[0])

    def set(self, key: str, value: str) -> None:
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, utc_now().isoformat()),
            )
            con.commit()

    def keys(self) -> List[str]:
        with self._connect() as con:
            cur = con.execute("SELECT key FROM kv_store ORDER BY key")
            return [str(row[0]) for row in cur.fetchall()]


class JSONFileKeyValueStore:
    """All keys in a single JSON document, replaced atomically on each write."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser().resolve()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        with self._path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if not isinstance(payload, dict):
            return {}
        return {str(key): str(value) for key, value in payload.items()}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                data = self._read()
            except ValueError as exc:
                # The write below replaces the unreadable document.
                get_logger(__name__).warning(
                    "Discarding unreadable key-value file %s: %s", self._path, exc
                )
                data = {}
            data[key] = value
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".kv-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle)
                os.replace(tmp_name, self._path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise


def create_key_value_store(config: StorageConfig) -> KeyValueStore:
    if config.backend == StorageBackend.JSON:
        return JSONFileKeyValueStore(config.json_path)
    return SQLiteKeyValueStore(config.database_path)


__all__ = [
    "JSONFileKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "create_key_value_store",
]
