"""FastAPI application exposing the token view and pipeline controls."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from ..datalake.schemas import FilterField, SortDirection, SortKey, ViewQuery
from ..datalake.watchlist import PersistenceError
from .state import DashboardState


class IntervalUpdate(BaseModel):
    seconds: int


def create_dashboard_app(state: DashboardState, *, manage_pipeline: bool = False) -> FastAPI:
    """Build the API. With ``manage_pipeline`` the app lifespan starts and closes the pipeline."""

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if manage_pipeline:
            await state.pipeline.start()
        try:
            yield
        finally:
            if manage_pipeline:
                await state.pipeline.close()

    app = FastAPI(title="Token Radar", version="1.0.0", lifespan=lifespan)
    cfg = state.config.dashboard
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def prometheus_metrics() -> str:
        return state.metrics.export_prometheus()

    @app.get("/api/status")
    async def api_status() -> JSONResponse:
        return JSONResponse(state.status())

    @app.get("/api/tokens")
    async def api_tokens(
        search: str = Query(""),
        filter_field: FilterField = Query(FilterField.NAME),
        min_market_cap: Optional[float] = Query(None, ge=0.0),
        max_market_cap: Optional[float] = Query(None, ge=0.0),
        min_initial_buy: Optional[float] = Query(None, ge=0.0),
        max_initial_buy: Optional[float] = Query(None, ge=0.0),
        sort_key: Optional[SortKey] = Query(None),
        sort_direction: SortDirection = Query(SortDirection.DESC),
        page: int = Query(1, ge=1),
    ) -> JSONResponse:
        query = ViewQuery(
            search=search,
            filter_field=filter_field,
            min_market_cap=min_market_cap,
            max_market_cap=max_market_cap,
            min_initial_buy=min_initial_buy,
            max_initial_buy=max_initial_buy,
            sort_key=sort_key,
            sort_direction=sort_direction,
            page=page,
            page_size=state.config.pipeline.page_size,
        )
        return JSONResponse(state.tokens(query))

    @app.get("/api/tokens/{mint}")
    async def api_token_details(mint: str) -> JSONResponse:
        details = await state.token_details(mint)
        if details is None:
            raise HTTPException(status_code=404, detail="Token not found")
        return JSONResponse(details)

    @app.get("/api/prices/{mint}")
    async def api_prices(mint: str) -> List[float]:
        return state.prices(mint)

    @app.get("/api/watchlist")
    async def api_watchlist() -> JSONResponse:
        return JSONResponse(state.watchlist())

    @app.post("/api/watchlist/{uri:path}")
    async def api_toggle_favorite(uri: str) -> JSONResponse:
        try:
            favorited = state.toggle_favorite(uri)
        except KeyError:
            raise HTTPException(status_code=404, detail="Unknown token uri") from None
        except PersistenceError as exc:
            raise HTTPException(
                status_code=500,
                detail=f"Favorite changed for this session but was not saved: {exc}",
            ) from exc
        return JSONResponse({"uri": uri, "favorite": favorited})

    @app.post("/api/pause")
    async def api_pause() -> Dict[str, Any]:
        state.pause()
        return {"paused": True}

    @app.post("/api/resume")
    async def api_resume() -> Dict[str, Any]:
        state.resume()
        return {"paused": False}

    @app.put("/api/interval")
    async def api_interval(body: IntervalUpdate) -> Dict[str, Any]:
        try:
            state.set_update_interval(body.seconds)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return {"updateIntervalSeconds": body.seconds}

    return app


__all__ = ["create_dashboard_app"]
