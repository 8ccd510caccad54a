"""Coalesces enriched records between flush ticks."""

from __future__ import annotations

import threading
from typing import List

from ..datalake.schemas import TokenRecord
from ..datalake.token_store import TokenStore
from ..utils.constants import UPDATE_INTERVAL_PRESETS


class IngestionBuffer:
    """FIFO of records waiting for the next flush.

    While paused, flushes are no-ops and the buffer grows without bound. Pause,
    resume and interval changes are picked up by the next tick.
    """

    def __init__(self, update_interval_seconds: int = 1) -> None:
        self._records: List[TokenRecord] = []
        self._lock = threading.Lock()
        self._paused = False
        self._interval = self._validate_interval(update_interval_seconds)

    @staticmethod
    def _validate_interval(seconds: int) -> int:
        if seconds not in UPDATE_INTERVAL_PRESETS:
            raise ValueError(
                f"Unsupported update interval {seconds}s; expected one of {sorted(UPDATE_INTERVAL_PRESETS)}"
            )
        return int(seconds)

    @property
    def update_interval_seconds(self) -> int:
        return self._interval

    def set_update_interval(self, seconds: int) -> None:
        self._interval = self._validate_interval(seconds)

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def add(self, record: TokenRecord) -> None:
        with self._lock:
            self._records.append(record)

    def flush(self, store: TokenStore) -> int:
        """Move every buffered record into ``store`` as one batch."""

        if self._paused:
            return 0
        with self._lock:
            if not self._records:
                return 0
            batch, self._records = self._records, []
        return store.add_batch(batch)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["IngestionBuffer"]
