from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path

from token_radar.analysis.price_simulator import PriceSimulator
from token_radar.config.settings import AppConfig, FeedConfig, PipelineConfig
from token_radar.datalake.schemas import TokenDetails, TokenMetadata, TokenRecord, ViewQuery
from token_radar.datalake.storage import SQLiteKeyValueStore
from token_radar.datalake.token_store import TokenStore
from token_radar.datalake.watchlist import WatchlistStore
from token_radar.ingestion.buffer import IngestionBuffer
from token_radar.monitoring.metrics import MetricsRegistry
from token_radar.pipeline import TokenPipeline


class FakeEnricher:
    """Builds records straight from the event, optionally held behind a gate."""

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.gate = gate
        self.seen: list[str] = []

    async def enrich(self, event):
        self.seen.append(event["uri"])
        if self.gate is not None:
            await self.gate.wait()
        return TokenRecord(
            uri=event["uri"],
            mint=event.get("mint"),
            market_cap_sol=float(event.get("marketCapSol", 0.0)),
            initial_buy=float(event.get("initialBuy", 0.0)),
            metadata=TokenMetadata(name=event.get("name")),
        )


class FakeDetailsClient:
    def __init__(self) -> None:
        self.requested: list[str] = []

    def fetch(self, mint: str):
        self.requested.append(mint)
        if mint == "remote-mint":
            return TokenDetails(mint=mint, name="Remote", source="remote")
        return None


def _pipeline(tmp_path: Path, config: AppConfig | None = None, **kwargs) -> TokenPipeline:
    kwargs.setdefault("enricher", FakeEnricher())
    return TokenPipeline(
        config or AppConfig(),
        watchlist=WatchlistStore(SQLiteKeyValueStore(tmp_path / "radar.sqlite3")),
        details_client=kwargs.pop("details_client", FakeDetailsClient()),
        rng=random.Random(1),
        metrics=MetricsRegistry(),
        **kwargs,
    )


def test_events_reach_store_only_on_flush(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path)

    async def _exercise() -> None:
        await pipeline.handle_event({"uri": "u1", "mint": "m1", "name": "Alpha"})
        await pipeline.handle_event({"uri": "u2", "mint": "m2", "name": "Beta"})
        await pipeline.wait_for_enrichment()

    asyncio.run(_exercise())
    assert len(pipeline.buffer) == 2
    assert len(pipeline.store) == 0

    assert pipeline.flush() == 2
    assert {record.uri for record in pipeline.store.get_all()} == {"u1", "u2"}
    assert len(pipeline.buffer) == 0
    assert pipeline.flush() == 0


def test_pause_holds_records_and_freezes_prices(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path)
    pipeline.store.add_batch([TokenRecord(uri="u0", mint="m0", initial_buy=1.0)])
    pipeline.pause()

    async def _exercise() -> None:
        await pipeline.handle_event({"uri": "u1", "mint": "m1"})
        await pipeline.wait_for_enrichment()

    asyncio.run(_exercise())
    assert pipeline.paused
    assert pipeline.flush() == 0
    assert pipeline.price_tick() == 0
    assert pipeline.price_history("m0") == []

    pipeline.resume()
    assert pipeline.flush() == 1
    assert pipeline.price_tick() == 2
    assert len(pipeline.price_history("m0")) == 1


def test_close_discards_late_enrichments(tmp_path: Path) -> None:
    gate = asyncio.Event()
    enricher = FakeEnricher(gate)
    pipeline = _pipeline(tmp_path, enricher=enricher)

    async def _exercise() -> None:
        await pipeline.handle_event({"uri": "late"})
        await asyncio.sleep(0)
        closing = asyncio.create_task(pipeline.close())
        await asyncio.sleep(0)
        gate.set()
        await closing
        await pipeline.handle_event({"uri": "after-close"})

    asyncio.run(_exercise())
    assert pipeline.closed
    assert enricher.seen == ["late"]
    assert len(pipeline.buffer) == 0
    assert pipeline.flush() == 0


def test_query_marks_favorites_and_pages(tmp_path: Path) -> None:
    pipeline = _pipeline(tmp_path)
    pipeline.store.add_batch(
        [
            TokenRecord(uri=f"u{i}", mint=f"m{i}", market_cap_sol=float(i), metadata=TokenMetadata(name=f"T{i}"))
            for i in range(5)
        ]
    )
    assert pipeline.toggle_favorite("u3") is True

    first_page = pipeline.query(ViewQuery(page=1, page_size=2))
    assert first_page.total_items == 5
    assert first_page.total_pages == 3
    assert [item.record.uri for item in first_page.items] == ["u0", "u1"]
    assert first_page.favorites == []
    assert pipeline.query(ViewQuery(page=2, page_size=2)).favorites == ["u3"]

    payload = pipeline.query(ViewQuery(search="t3", page_size=10)).to_payload()
    assert [item["uri"] for item in payload["items"]] == ["u3"]
    assert payload["items"][0]["favorite"] is True
    assert [entry.uri for entry in pipeline.watchlist_entries()] == ["u3"]


def test_token_details_prefers_store_then_remote(tmp_path: Path) -> None:
    details_client = FakeDetailsClient()
    pipeline = _pipeline(tmp_path, details_client=details_client)
    pipeline.store.add_batch([TokenRecord(uri="u1", mint="local-mint", metadata=TokenMetadata(name="Local"))])

    local = asyncio.run(pipeline.token_details("local-mint"))
    remote = asyncio.run(pipeline.token_details("remote-mint"))
    missing = asyncio.run(pipeline.token_details("nope"))

    assert local is not None and local.name == "Local" and local.source == "store"
    assert remote is not None and remote.name == "Remote"
    assert missing is None
    assert details_client.requested == ["remote-mint", "nope"]


class _ScriptedSocket:
    def __init__(self, frames) -> None:
        self.frames = list(frames)
        self.closed = False

    async def send(self, message: str) -> None:
        return None

    async def close(self) -> None:
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> bool:
        self.closed = True
        return False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
        # Stay connected until the pipeline closes the socket.
        while not self.closed:
            await asyncio.sleep(0.01)


def test_started_pipeline_flushes_on_its_own(tmp_path: Path) -> None:
    socket = _ScriptedSocket([json.dumps({"uri": "u1", "mint": "m1", "initialBuy": 4})])
    config = AppConfig(
        feed=FeedConfig(reconnect_delay_seconds=0.05),
        pipeline=PipelineConfig(update_interval_seconds=1, price_tick_seconds=0.05),
    )
    pipeline = _pipeline(tmp_path, config, connect=lambda url, **kwargs: socket)
    observed = {}

    async def _exercise() -> None:
        async with pipeline:
            await asyncio.sleep(1.3)
            observed["status"] = pipeline.status()
            observed["history"] = pipeline.price_history("m1")

    asyncio.run(_exercise())

    assert [record.uri for record in pipeline.store.get_all()] == ["u1"]
    assert observed["status"]["connection"]["connected"] is True
    assert observed["status"]["stored"] == 1
    assert observed["history"]
    assert pipeline.status()["closed"] is True
    assert socket.closed


def test_injected_empty_collaborators_are_kept(tmp_path: Path) -> None:
    store = TokenStore()
    buffer = IngestionBuffer(20)
    kv = SQLiteKeyValueStore(tmp_path / "injected.sqlite3")
    watchlist = WatchlistStore(kv)
    prices = PriceSimulator(window=3, rng=random.Random(2))
    details_client = FakeDetailsClient()
    pipeline = TokenPipeline(
        AppConfig(),
        store=store,
        buffer=buffer,
        enricher=FakeEnricher(),
        watchlist=watchlist,
        price_simulator=prices,
        details_client=details_client,
        metrics=MetricsRegistry(),
    )

    assert pipeline.store is store
    assert pipeline.buffer is buffer
    assert pipeline.watchlist is watchlist
    assert pipeline.prices is prices
    assert pipeline.status()["updateIntervalSeconds"] == 20

    store.add_batch([TokenRecord(uri="u1", mint="m1", initial_buy=1.0)])
    for _ in range(5):
        pipeline.price_tick()
    assert len(pipeline.price_history("m1")) == 3
    assert pipeline.toggle_favorite("u1") is True
    assert "u1" in kv.get("favorites")
