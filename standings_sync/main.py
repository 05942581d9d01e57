from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from standings_sync.services.config import SyncConfig, live_refresh_enabled
from standings_sync.services.errors import DataUnavailable
from standings_sync.services.models import Fixture, League, Season, StandingsRow, TopScorer
from standings_sync.services.orchestrator import Snapshot, SyncOrchestrator


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    values = [item.strip() for item in raw.split(",") if item.strip()]
    return values or [default]


class LeagueResponse(BaseModel):
    league: League
    seasons: list[Season]
    stale: bool = False
    fetched_at: float | None = None


class StandingsResponse(BaseModel):
    league_id: int
    season: int
    stale: bool = False
    fetched_at: float | None = None
    warnings: list[str] = Field(default_factory=list)
    standings: list[StandingsRow]


class FixturesResponse(BaseModel):
    league_id: int
    season: int
    stale: bool = False
    fetched_at: float | None = None
    warnings: list[str] = Field(default_factory=list)
    fixtures: list[Fixture]


class TopScorersResponse(BaseModel):
    league_id: int
    season: int
    stale: bool = False
    fetched_at: float | None = None
    warnings: list[str] = Field(default_factory=list)
    top_scorers: list[TopScorer]


class InvalidateResponse(BaseModel):
    league_id: int
    invalidated: int


def _snapshot_warnings(snapshot: Snapshot) -> list[str]:
    if not snapshot.stale:
        return []
    if snapshot.error:
        return [f"Data may be outdated: {snapshot.error}"]
    return ["Data may be outdated; a refresh is in progress."]


def create_app(orchestrator: SyncOrchestrator | None = None) -> FastAPI:
    sync = orchestrator or SyncOrchestrator(SyncConfig.from_env())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if live_refresh_enabled():
            sync.start_live_refresh()
        try:
            yield
        finally:
            await sync.aclose()

    app = FastAPI(
        title="Standings Sync API",
        version="1.0.0",
        description="Cached league, standings and fixture data from api-sports.",
        lifespan=lifespan,
    )
    app.state.orchestrator = sync

    cors_origins = _parse_csv_env("CORS_ORIGINS", "http://localhost:3000")
    allow_credentials = "*" not in cors_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/readyz")
    async def readyz() -> dict[str, Any]:
        status = sync.status()
        return {
            "status": "ready",
            "api_key_configured": bool(sync.config.api_key),
            "live_ttl_seconds": sync.config.live_ttl_seconds,
            "stale_ttl_seconds": sync.config.stale_ttl_seconds,
            "cache_backend": "file" if sync.config.cache_snapshot_path else "memory",
            **status,
        }

    @app.get("/api/leagues/{league_id}", response_model=LeagueResponse)
    async def get_league(league_id: int) -> LeagueResponse:
        try:
            snapshot = await sync.league_snapshot(league_id)
        except DataUnavailable as exc:
            logger.warning(f"League {league_id} unavailable: {exc}")
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        info = snapshot.value
        return LeagueResponse(
            league=info.league,
            seasons=info.seasons,
            stale=snapshot.stale,
            fetched_at=snapshot.fetched_at,
        )

    @app.get("/api/leagues/{league_id}/standings", response_model=StandingsResponse)
    async def get_standings(
        league_id: int,
        season: int = Query(..., ge=1900, le=2100, description="Season start year, e.g. 2022"),
    ) -> StandingsResponse:
        try:
            snapshot = await sync.standings_snapshot(league_id, season)
        except DataUnavailable as exc:
            logger.warning(f"Standings league={league_id} season={season} unavailable: {exc}")
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        return StandingsResponse(
            league_id=league_id,
            season=season,
            stale=snapshot.stale,
            fetched_at=snapshot.fetched_at,
            warnings=_snapshot_warnings(snapshot),
            standings=snapshot.value,
        )

    @app.get("/api/leagues/{league_id}/fixtures", response_model=FixturesResponse)
    async def get_fixtures(
        league_id: int,
        season: int = Query(..., ge=1900, le=2100, description="Season start year, e.g. 2022"),
    ) -> FixturesResponse:
        try:
            snapshot = await sync.fixtures_snapshot(league_id, season)
        except DataUnavailable as exc:
            logger.warning(f"Fixtures league={league_id} season={season} unavailable: {exc}")
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        return FixturesResponse(
            league_id=league_id,
            season=season,
            stale=snapshot.stale,
            fetched_at=snapshot.fetched_at,
            warnings=_snapshot_warnings(snapshot),
            fixtures=snapshot.value,
        )

    @app.get("/api/leagues/{league_id}/top-scorers", response_model=TopScorersResponse)
    async def get_top_scorers(
        league_id: int,
        season: int = Query(..., ge=1900, le=2100, description="Season start year, e.g. 2022"),
    ) -> TopScorersResponse:
        try:
            snapshot = await sync.top_scorers_snapshot(league_id, season)
        except DataUnavailable as exc:
            logger.warning(f"Top scorers league={league_id} season={season} unavailable: {exc}")
            raise HTTPException(status_code=503, detail=str(exc)) from exc

        return TopScorersResponse(
            league_id=league_id,
            season=season,
            stale=snapshot.stale,
            fetched_at=snapshot.fetched_at,
            warnings=_snapshot_warnings(snapshot),
            top_scorers=snapshot.value,
        )

    @app.post("/api/leagues/{league_id}/invalidate", response_model=InvalidateResponse)
    async def invalidate_league(league_id: int) -> InvalidateResponse:
        return InvalidateResponse(league_id=league_id, invalidated=sync.invalidate_league(league_id))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("standings_sync.main:app", host="0.0.0.0", port=8000, reload=True)
