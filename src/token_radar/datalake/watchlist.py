"""Persisted set of favorited records."""

from __future__ import annotations

import json
import threading
from typing import Dict, List, Optional

from ..monitoring.logger import get_logger
from ..utils.constants import WATCHLIST_KEY
from .schemas import TokenRecord, WatchlistEntry
from .storage import KeyValueStore
from .token_store import TokenStore


class PersistenceError(RuntimeError):
    """Raised when the watchlist could not be written to storage."""


class WatchlistStore:
    """Favorites keyed by ``uri``, each holding a snapshot of the record.

    Every toggle rewrites the full list under one key before the call returns.
    A failed write still leaves the toggle applied in memory for the session
    and surfaces as :class:`PersistenceError`.
    """

    def __init__(self, storage: KeyValueStore, *, key: str = WATCHLIST_KEY) -> None:
        self._storage = storage
        self._key = key
        self._entries: Dict[str, WatchlistEntry] = {}
        self._lock = threading.RLock()
        self._logger = get_logger(__name__)
        self._load()

    def _load(self) -> None:
        try:
            raw = self._storage.get(self._key)
        except Exception as exc:  # noqa: BLE001 - storage backends raise varied errors
            self._logger.warning("Unable to read watchlist: %s", exc)
            return
        if not raw:
            return
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            self._logger.warning("Discarding corrupt watchlist payload: %s", exc)
            return
        if not isinstance(payload, list):
            self._logger.warning("Discarding watchlist payload of type %s", type(payload).__name__)
            return
        for item in payload:
            if not isinstance(item, dict) or not isinstance(item.get("uri"), str):
                continue
            entry = WatchlistEntry.from_payload(item)
            self._entries.setdefault(entry.uri, entry)
        self._logger.debug("Loaded %d watchlist entries", len(self._entries))

    def _persist(self, entries: List[WatchlistEntry]) -> None:
        payload = json.dumps([entry.to_payload() for entry in entries], default=str)
        try:
            self._storage.set(self._key, payload)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Unable to save watchlist: {exc}") from exc

    def toggle(self, record: TokenRecord) -> bool:
        """Add or remove ``record``; returns True when it is now favorited."""

        with self._lock:
            updated = dict(self._entries)
            if record.uri in updated:
                del updated[record.uri]
                favorited = False
            else:
                updated[record.uri] = WatchlistEntry(uri=record.uri, snapshot=record.snapshot())
                favorited = True
            try:
                self._persist(list(updated.values()))
            finally:
                self._entries = updated
        self._logger.info(
            "Watchlist %s %s", "added" if favorited else "removed", record.uri, extra={"uri": record.uri}
        )
        return favorited

    def toggle_uri(self, uri: str, store: TokenStore) -> bool:
        """Toggle by ``uri``, resolving the live record from ``store`` when adding."""

        with self._lock:
            existing = self._entries.get(uri)
        if existing is not None:
            return self.toggle(existing.snapshot)
        record = store.get_by_uri(uri)
        if record is None:
            raise KeyError(uri)
        return self.toggle(record)

    def contains(self, uri: str) -> bool:
        with self._lock:
            return uri in self._entries

    def get(self, uri: str) -> Optional[WatchlistEntry]:
        with self._lock:
            return self._entries.get(uri)

    def entries(self) -> List[WatchlistEntry]:
        with self._lock:
            return list(self._entries.values())

    def uris(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["PersistenceError", "WatchlistStore"]
