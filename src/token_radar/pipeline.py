"""Ingestion pipeline: feed → enrichment → buffer → store, plus the price walk."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from .analysis.price_simulator import PriceSimulator
from .analysis.view import build_view
from .config.settings import AppConfig, get_app_config
from .datalake.schemas import ConnectionStatus, TokenDetails, TokenView, ViewQuery, WatchlistEntry
from .datalake.storage import create_key_value_store
from .datalake.token_store import TokenStore
from .datalake.watchlist import WatchlistStore
from .ingestion.buffer import IngestionBuffer
from .ingestion.feed_connector import FeedConnector
from .ingestion.market_fields import MarketFieldSimulator
from .ingestion.metadata import MetadataEnricher
from .ingestion.token_details import TokenDetailsClient
from .monitoring.logger import get_logger
from .monitoring.metrics import METRICS, MetricsRegistry


class TokenPipeline:
    """Drives the feed, the flush ticker and the price ticker on one event loop.

    Only the flush tick writes to the token store and only the price tick
    writes to the price series. Errors inside a tick are logged and the tick
    keeps running; the loop ends only through :meth:`close`.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        store: Optional[TokenStore] = None,
        buffer: Optional[IngestionBuffer] = None,
        enricher: Optional[MetadataEnricher] = None,
        watchlist: Optional[WatchlistStore] = None,
        price_simulator: Optional[PriceSimulator] = None,
        details_client: Optional[TokenDetailsClient] = None,
        connect: Optional[Callable[..., Any]] = None,
        rng: Optional[random.Random] = None,
        metrics: MetricsRegistry = METRICS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or get_app_config()
        self._metrics = metrics
        self._logger = logger or get_logger(__name__)
        seed_source = rng if rng is not None else random.Random(self._config.simulation.seed)

        # Stores and simulators define __len__, so an empty injected one is falsy.
        self.store = store if store is not None else TokenStore()
        if buffer is None:
            buffer = IngestionBuffer(self._config.pipeline.update_interval_seconds)
        self.buffer = buffer
        if enricher is None:
            market_fields = None
            if self._config.simulation.simulate_market_fields:
                market_fields = MarketFieldSimulator(
                    self._config.simulation, rng=random.Random(seed_source.random())
                )
            enricher = MetadataEnricher(
                self._config.metadata, market_fields=market_fields, metrics=metrics
            )
        self.enricher = enricher
        if watchlist is None:
            watchlist = WatchlistStore(
                create_key_value_store(self._config.storage), key=self._config.storage.watchlist_key
            )
        self.watchlist = watchlist
        if price_simulator is None:
            price_simulator = PriceSimulator.from_config(
                self._config.simulation, rng=random.Random(seed_source.random())
            )
        self.prices = price_simulator
        if details_client is None:
            details_client = TokenDetailsClient(self._config.metadata)
        self._details_client = details_client
        self._connector = FeedConnector(
            self.handle_event, self._config.feed, connect=connect, metrics=metrics
        )
        self._fetch_slots = asyncio.Semaphore(self._config.metadata.max_concurrent_fetches)
        self._inflight: Set[asyncio.Task] = set()
        self._tasks: List[asyncio.Task] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connection(self) -> ConnectionStatus:
        return self._connector.status

    async def start(self) -> None:
        if self._tasks:
            raise RuntimeError("Pipeline already started")
        if self._closed:
            raise RuntimeError("Pipeline has been closed")
        self._tasks = [
            asyncio.create_task(self._connector.run(), name="feed-connector"),
            asyncio.create_task(self._flush_loop(), name="flush-ticker"),
            asyncio.create_task(self._price_loop(), name="price-ticker"),
        ]
        self._logger.info(
            "Pipeline started (interval=%ss, price tick=%ss)",
            self.buffer.update_interval_seconds,
            self._config.pipeline.price_tick_seconds,
        )

    async def close(self) -> None:
        """Tear down the subscription and both timers.

        In-flight enrichments are allowed to finish; their records are dropped.
        """

        if self._closed:
            return
        self._closed = True
        await self._connector.stop()
        for task in self._tasks:
            if task.get_name() != "feed-connector":
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._inflight:
            await asyncio.wait(set(self._inflight), timeout=self._config.metadata.http_timeout)
        self._tasks = []
        self._logger.info("Pipeline closed")

    async def __aenter__(self) -> "TokenPipeline":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def handle_event(self, event: Mapping[str, Any]) -> None:
        """Schedule enrichment for one validated feed event without blocking intake."""

        if self._closed:
            return
        task = asyncio.create_task(self._enrich_and_buffer(dict(event)))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def wait_for_enrichment(self) -> None:
        """Wait until every scheduled enrichment has finished."""

        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def _enrich_and_buffer(self, event: Dict[str, Any]) -> None:
        try:
            async with self._fetch_slots:
                record = await self.enricher.enrich(event)
        except Exception:  # noqa: BLE001 - enrichment must never stop intake
            self._logger.exception("Enrichment crashed for %s", event.get("uri"))
            return
        if self._closed:
            self._logger.debug("Discarding %s enriched after shutdown", record.uri)
            return
        self.buffer.add(record)
        self._metrics.gauge("buffer.depth", len(self.buffer))

    def flush(self) -> int:
        moved = self.buffer.flush(self.store)
        if moved:
            self._metrics.increment("buffer.flushes")
            self._metrics.increment("buffer.records_flushed", moved)
            self._logger.debug("Flushed %d records", moved)
        self._metrics.gauge("buffer.depth", len(self.buffer))
        self._metrics.gauge("store.size", len(self.store))
        return moved

    def price_tick(self) -> int:
        return self.prices.tick(self.store.get_all(), paused=self.buffer.paused)

    async def _flush_loop(self) -> None:
        while True:
            await asyncio.sleep(self.buffer.update_interval_seconds)
            try:
                self.flush()
            except Exception:  # noqa: BLE001
                self._logger.exception("Flush tick failed")

    async def _price_loop(self) -> None:
        while True:
            await asyncio.sleep(self._config.pipeline.price_tick_seconds)
            try:
                self.price_tick()
            except Exception:  # noqa: BLE001
                self._logger.exception("Price tick failed")

    def pause(self) -> None:
        self.buffer.pause()

    def resume(self) -> None:
        self.buffer.resume()

    @property
    def paused(self) -> bool:
        return self.buffer.paused

    def set_update_interval(self, seconds: int) -> None:
        self.buffer.set_update_interval(seconds)
        self._logger.info("Update interval set to %ss", seconds)

    def toggle_favorite(self, uri: str) -> bool:
        return self.watchlist.toggle_uri(uri, self.store)

    def watchlist_entries(self) -> List[WatchlistEntry]:
        return self.watchlist.entries()

    def query(self, query: Optional[ViewQuery] = None) -> TokenView:
        query = query or ViewQuery(page_size=self._config.pipeline.page_size)
        return build_view(self.store.get_all(), query, self.watchlist.uris())

    def price_history(self, mint: str) -> List[float]:
        return self.prices.series(mint)

    async def token_details(self, mint: str) -> Optional[TokenDetails]:
        record = self.store.get_by_mint(mint)
        if record is not None:
            return TokenDetails.from_record(record)
        return await asyncio.to_thread(self._details_client.fetch, mint)

    def status(self) -> Dict[str, Any]:
        return {
            "connection": self.connection.to_payload(),
            "paused": self.buffer.paused,
            "updateIntervalSeconds": self.buffer.update_interval_seconds,
            "buffered": len(self.buffer),
            "stored": len(self.store),
            "watchlist": len(self.watchlist),
            "pendingEnrichments": len(self._inflight),
            "closed": self._closed,
        }


__all__ = ["TokenPipeline"]
