from __future__ import annotations

import asyncio
import random
from pathlib import Path

from httpx import ASGITransport, AsyncClient

from token_radar.config.settings import AppConfig
from token_radar.dashboard import DashboardState, create_dashboard_app
from token_radar.datalake.schemas import TokenDetails, TokenMetadata, TokenRecord
from token_radar.datalake.storage import SQLiteKeyValueStore
from token_radar.datalake.watchlist import WatchlistStore
from token_radar.monitoring.metrics import MetricsRegistry
from token_radar.pipeline import TokenPipeline


class _NoRemoteDetails:
    def fetch(self, mint: str):
        return None


class _ReadOnlyStore:
    def get(self, key: str):
        return None

    def set(self, key: str, value: str) -> None:
        raise OSError("read-only file system")


class _UnusedEnricher:
    async def enrich(self, event):  # pragma: no cover - events are never fed here
        raise AssertionError("unexpected enrichment")


RECORDS = [
    TokenRecord(
        uri="u1",
        mint="m1",
        market_cap_sol=30.0,
        initial_buy=2.0,
        liquidity=150.0,
        holders=400,
        top_holders=[10.0, 5.0],
        contract_age=20,
        metadata=TokenMetadata(name="Alpha", symbol="ALP", website="https://alpha.example"),
    ),
    TokenRecord(
        uri="u2",
        mint="m2",
        market_cap_sol=10.0,
        initial_buy=8.0,
        metadata=TokenMetadata(name="Beta", symbol="BET"),
    ),
    TokenRecord(uri="u3", mint="m3", market_cap_sol=20.0),
]


def _state(tmp_path: Path, kv=None) -> DashboardState:
    config = AppConfig()
    metrics = MetricsRegistry()
    pipeline = TokenPipeline(
        config,
        enricher=_UnusedEnricher(),
        watchlist=WatchlistStore(kv or SQLiteKeyValueStore(tmp_path / "radar.sqlite3")),
        details_client=_NoRemoteDetails(),
        rng=random.Random(0),
        metrics=metrics,
    )
    pipeline.store.add_batch([record.snapshot() for record in RECORDS])
    return DashboardState(config=config, pipeline=pipeline, metrics=metrics)


def _run(app, scenario) -> None:
    async def _exercise() -> None:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            await scenario(client)

    asyncio.run(_exercise())


def test_health_and_status(tmp_path: Path) -> None:
    state = _state(tmp_path)
    app = create_dashboard_app(state)

    async def scenario(client: AsyncClient) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

        status = (await client.get("/api/status")).json()
        assert status["stored"] == 3
        assert status["paused"] is False
        assert status["connection"]["connected"] is False
        assert "counters" in status["metrics"]

        metrics_resp = await client.get("/metrics")
        assert metrics_resp.status_code == 200

    _run(app, scenario)


def test_token_listing_filters_sorts_and_validates(tmp_path: Path) -> None:
    app = create_dashboard_app(_state(tmp_path))

    async def scenario(client: AsyncClient) -> None:
        listing = (await client.get("/api/tokens")).json()
        assert [item["uri"] for item in listing["items"]] == ["u1", "u2", "u3"]
        assert listing["summary"]["count"] == 3
        assert listing["summary"]["totalMarketCap"] == 60.0

        by_symbol = (await client.get("/api/tokens", params={"search": "bet", "filter_field": "symbol"})).json()
        assert [item["uri"] for item in by_symbol["items"]] == ["u2"]

        ascending = (
            await client.get("/api/tokens", params={"sort_key": "marketCapSol", "sort_direction": "asc"})
        ).json()
        assert [item["uri"] for item in ascending["items"]] == ["u2", "u3", "u1"]

        ranged = (await client.get("/api/tokens", params={"min_initial_buy": 1, "max_market_cap": 25})).json()
        assert [item["uri"] for item in ranged["items"]] == ["u2"]

        beyond = (await client.get("/api/tokens", params={"page": 5})).json()
        assert beyond["items"] == []
        assert beyond["totalItems"] == 3

        assert (await client.get("/api/tokens", params={"sort_key": "volume"})).status_code == 422
        assert (await client.get("/api/tokens", params={"page": 0})).status_code == 422

    _run(app, scenario)


def test_watchlist_toggle_round_trip(tmp_path: Path) -> None:
    app = create_dashboard_app(_state(tmp_path))

    async def scenario(client: AsyncClient) -> None:
        added = await client.post("/api/watchlist/u1")
        assert added.status_code == 200
        assert added.json() == {"uri": "u1", "favorite": True}

        entries = (await client.get("/api/watchlist")).json()
        assert [entry["uri"] for entry in entries] == ["u1"]
        assert entries[0]["metadata"]["name"] == "Alpha"

        listing = (await client.get("/api/tokens")).json()
        assert [item["favorite"] for item in listing["items"]] == [True, False, False]

        removed = await client.post("/api/watchlist/u1")
        assert removed.json()["favorite"] is False
        assert (await client.get("/api/watchlist")).json() == []

        assert (await client.post("/api/watchlist/unknown")).status_code == 404

    _run(app, scenario)


def test_watchlist_persistence_failure_reports_500(tmp_path: Path) -> None:
    state = _state(tmp_path, kv=_ReadOnlyStore())
    app = create_dashboard_app(state)

    async def scenario(client: AsyncClient) -> None:
        resp = await client.post("/api/watchlist/u2")
        assert resp.status_code == 500
        assert "not saved" in resp.json()["detail"]

    _run(app, scenario)
    assert state.pipeline.watchlist.contains("u2")


def test_controls_pause_and_interval(tmp_path: Path) -> None:
    state = _state(tmp_path)
    app = create_dashboard_app(state)

    async def scenario(client: AsyncClient) -> None:
        assert (await client.post("/api/pause")).json() == {"paused": True}
        assert (await client.get("/api/status")).json()["paused"] is True
        assert (await client.post("/api/resume")).json() == {"paused": False}

        accepted = await client.put("/api/interval", json={"seconds": 10})
        assert accepted.status_code == 200
        assert accepted.json() == {"updateIntervalSeconds": 10}

        rejected = await client.put("/api/interval", json={"seconds": 3})
        assert rejected.status_code == 422

    _run(app, scenario)
    assert state.pipeline.buffer.update_interval_seconds == 10
    assert state.pipeline.paused is False


def test_token_details_and_prices(tmp_path: Path) -> None:
    state = _state(tmp_path)
    state.pipeline.price_tick()
    app = create_dashboard_app(state)

    async def scenario(client: AsyncClient) -> None:
        details = await client.get("/api/tokens/m1")
        assert details.status_code == 200
        payload = details.json()
        assert payload["name"] == "Alpha"
        assert payload["source"] == "store"
        assert len(payload["prices"]) == 1

        assert (await client.get("/api/tokens/missing")).status_code == 404
        assert len((await client.get("/api/prices/m2")).json()) == 1
        assert (await client.get("/api/prices/missing")).json() == []

    _run(app, scenario)


def test_details_fall_back_to_remote_lookup(tmp_path: Path) -> None:
    class _Remote:
        def fetch(self, mint: str):
            return TokenDetails(mint=mint, name="Remote", source="remote")

    config = AppConfig()
    pipeline = TokenPipeline(
        config,
        enricher=_UnusedEnricher(),
        watchlist=WatchlistStore(SQLiteKeyValueStore(tmp_path / "radar.sqlite3")),
        details_client=_Remote(),
        metrics=MetricsRegistry(),
    )
    app = create_dashboard_app(DashboardState(config=config, pipeline=pipeline))

    async def scenario(client: AsyncClient) -> None:
        payload = (await client.get("/api/tokens/elsewhere")).json()
        assert payload["name"] == "Remote"
        assert payload["source"] == "remote"
        assert payload["prices"] == []

    _run(app, scenario)
