"""Canonical, insertion-ordered collection of flushed token records."""

from __future__ import annotations

import threading
from typing import Iterable, List, Optional

from .schemas import TokenRecord


class TokenStore:
    """Holds every record that has left the ingestion buffer.

    Each batch is prepended as a unit so the newest records come first while
    the order inside a batch is preserved. Records are never removed.
    """

    def __init__(self, records: Optional[Iterable[TokenRecord]] = None) -> None:
        self._records: List[TokenRecord] = list(records or [])
        self._lock = threading.RLock()

    def add_batch(self, records: Iterable[TokenRecord]) -> int:
        batch = list(records)
        if not batch:
            return 0
        with self._lock:
            self._records[:0] = batch
        return len(batch)

    def get_all(self) -> List[TokenRecord]:
        with self._lock:
            return list(self._records)

    def get_by_mint(self, mint: str) -> Optional[TokenRecord]:
        if not mint:
            return None
        with self._lock:
            for record in self._records:
                if record.mint == mint:
                    return record
        return None

    def get_by_uri(self, uri: str) -> Optional[TokenRecord]:
        with self._lock:
            for record in self._records:
                if record.uri == uri:
                    return record
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["TokenStore"]
