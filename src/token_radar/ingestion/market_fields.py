"""Placeholder market fields for events that do not carry them.

The feed only announces launches; liquidity, holder distribution, contract age
and volatility are simulated so the scoring heuristics have something to work
with. The random source is injected so tests can pin the values.
"""

from __future__ import annotations

import random
from typing import Any, Dict, List, Mapping, Optional

from ..config.settings import SimulationConfig


class MarketFieldSimulator:
    def __init__(self, config: Optional[SimulationConfig] = None, rng: Optional[random.Random] = None) -> None:
        self._config = config or SimulationConfig()
        self._rng = rng or random.Random(self._config.seed)

    def _top_holders(self) -> List[float]:
        remaining = 100.0
        shares: List[float] = []
        for _ in range(self._config.top_holder_count):
            share = self._rng.uniform(0.0, remaining * 0.5)
            shares.append(round(share, 2))
            remaining -= share
        return sorted(shares, reverse=True)

    def generate(self) -> Dict[str, Any]:
        cfg = self._config
        return {
            "liquidity": round(self._rng.uniform(0.0, cfg.max_liquidity), 2),
            "holders": self._rng.randint(0, cfg.max_holders),
            "topHolders": self._top_holders(),
            "contractAge": self._rng.randint(0, cfg.max_contract_age_days),
            "priceVolatility": round(self._rng.uniform(0.0, cfg.max_price_volatility_pct), 2),
        }

    def fill_missing(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``event`` with absent market fields simulated."""

        payload = dict(event)
        for key, value in self.generate().items():
            if payload.get(key) is None:
                payload[key] = value
        return payload


__all__ = ["MarketFieldSimulator"]
