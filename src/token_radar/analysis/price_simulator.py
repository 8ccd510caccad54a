"""Synthetic price walk used for sparkline rendering.

This is a presentation mock: there is no price oracle behind it.
"""

from __future__ import annotations

import random
import threading
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional

from ..config.settings import SimulationConfig
from ..datalake.schemas import TokenRecord
from ..utils.constants import PRICE_WINDOW_SIZE


class PriceSimulator:
    """Keeps one bounded FIFO price window per mint."""

    def __init__(
        self,
        *,
        window: int = PRICE_WINDOW_SIZE,
        perturbation_pct: float = 0.05,
        rng: Optional[random.Random] = None,
    ) -> None:
        if window < 1:
            raise ValueError("window must be >= 1")
        self._window = window
        self._perturbation = perturbation_pct
        self._rng = rng or random.Random()
        self._series: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls, config: SimulationConfig, rng: Optional[random.Random] = None
    ) -> "PriceSimulator":
        return cls(
            window=config.price_window,
            perturbation_pct=config.price_perturbation_pct,
            rng=rng,
        )

    def tick(self, records: Iterable[TokenRecord], paused: bool = False) -> int:
        """Advance every mint's series by one step; returns how many moved."""

        if paused:
            return 0
        advanced = 0
        with self._lock:
            seen: set[str] = set()
            for record in records:
                mint = record.mint
                if not mint or mint in seen:
                    continue
                seen.add(mint)
                series = self._series.get(mint)
                if series is None:
                    series = deque(maxlen=self._window)
                    self._series[mint] = series
                last = series[-1] if series else (record.initial_buy or 0.0)
                factor = 1.0 + self._rng.uniform(-self._perturbation, self._perturbation)
                series.append(last * factor)
                advanced += 1
        return advanced

    def series(self, mint: str) -> List[float]:
        with self._lock:
            return list(self._series.get(mint, ()))

    def snapshot(self) -> Dict[str, List[float]]:
        with self._lock:
            return {mint: list(values) for mint, values in self._series.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._series)


__all__ = ["PriceSimulator"]
