"""Shared dashboard state wrapping the running pipeline."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..config.settings import AppConfig
from ..datalake.schemas import ViewQuery
from ..monitoring.metrics import METRICS, MetricsRegistry
from ..pipeline import TokenPipeline


class DashboardState:
    """Translates API calls into pipeline reads and mutations."""

    def __init__(
        self,
        *,
        config: AppConfig,
        pipeline: TokenPipeline,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        self.config = config
        self.pipeline = pipeline
        self.metrics = metrics

    def status(self) -> Dict[str, Any]:
        payload = self.pipeline.status()
        payload["metrics"] = self.metrics.snapshot()
        return payload

    def tokens(self, query: ViewQuery) -> Dict[str, Any]:
        return self.pipeline.query(query).to_payload()

    async def token_details(self, mint: str) -> Optional[Dict[str, Any]]:
        details = await self.pipeline.token_details(mint)
        if details is None:
            return None
        payload = details.to_payload()
        payload["prices"] = self.pipeline.price_history(mint)
        return payload

    def prices(self, mint: str) -> List[float]:
        return self.pipeline.price_history(mint)

    def watchlist(self) -> List[Dict[str, Any]]:
        return [entry.to_payload() for entry in self.pipeline.watchlist_entries()]

    def toggle_favorite(self, uri: str) -> bool:
        return self.pipeline.toggle_favorite(uri)

    def pause(self) -> None:
        self.pipeline.pause()

    def resume(self) -> None:
        self.pipeline.resume()

    def set_update_interval(self, seconds: int) -> None:
        self.pipeline.set_update_interval(seconds)


__all__ = ["DashboardState"]
