"""Single entry point the rest of the application calls for league data.

Every cache key moves through Empty -> Pending -> Fresh -> Stale -> Pending.
A fetch is only started from Empty or Stale, and while one is pending every
other caller for that key either gets the stale value straight away or, on a
cold key, awaits the same fetch.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

from loguru import logger

from standings_sync.services.cache_store import CacheEntry, CacheKey, CacheStore, ResourceKind
from standings_sync.services.config import SyncConfig
from standings_sync.services.errors import (
    DataUnavailable,
    NetworkError,
    RateLimited,
    SchemaValidationError,
    SyncError,
    UpstreamError,
)
from standings_sync.services.models import (
    Fixture,
    LeagueInfo,
    NormalizedBundle,
    StandingsRow,
    TopScorer,
)
from standings_sync.services.normalizer import normalize, validate_standings
from standings_sync.services.persistent_store import PersistentStore
from standings_sync.services.scheduler import FetchScheduler

_DEGRADABLE_ERRORS = (RateLimited, NetworkError, UpstreamError, SchemaValidationError)


@dataclass(frozen=True)
class Snapshot:
    value: Any
    stale: bool
    fetched_at: float | None = None
    error: str | None = None

    @classmethod
    def from_entry(cls, entry: CacheEntry, stale: bool = False, error: str | None = None) -> "Snapshot":
        return cls(value=entry.value, stale=stale, fetched_at=entry.fetched_at, error=error)


class SyncOrchestrator:
    def __init__(
        self,
        config: SyncConfig | None = None,
        cache: CacheStore | None = None,
        scheduler: FetchScheduler | None = None,
    ) -> None:
        self.config = config or SyncConfig.from_env()
        if cache is None:
            cache = CacheStore(
                persistence=PersistentStore(snapshot_path=self.config.cache_snapshot_path)
            )
            cache.load()
        self.cache = cache
        self.scheduler = scheduler or FetchScheduler(self.config, clock=self.cache.clock)

        self._stop_event: asyncio.Event | None = None
        self._live_task: asyncio.Task | None = None

    async def get_standings(self, league_id: int, season: int) -> list[StandingsRow]:
        snapshot = await self.standings_snapshot(league_id, season)
        return list(snapshot.value)

    async def standings_snapshot(self, league_id: int, season: int) -> Snapshot:
        return await self._resolve(CacheKey(ResourceKind.STANDINGS, int(league_id), int(season)))

    async def get_fixtures(self, league_id: int, season: int) -> list[Fixture]:
        snapshot = await self.fixtures_snapshot(league_id, season)
        return list(snapshot.value)

    async def fixtures_snapshot(self, league_id: int, season: int) -> Snapshot:
        return await self._resolve(CacheKey(ResourceKind.FIXTURES, int(league_id), int(season)))

    async def get_top_scorers(self, league_id: int, season: int) -> list[TopScorer]:
        snapshot = await self.top_scorers_snapshot(league_id, season)
        return list(snapshot.value)

    async def top_scorers_snapshot(self, league_id: int, season: int) -> Snapshot:
        return await self._resolve(CacheKey(ResourceKind.TOP_SCORERS, int(league_id), int(season)))

    async def get_league(self, league_id: int) -> LeagueInfo:
        snapshot = await self.league_snapshot(league_id)
        return snapshot.value

    async def league_snapshot(self, league_id: int) -> Snapshot:
        return await self._resolve(CacheKey(ResourceKind.LEAGUE, int(league_id)))

    def invalidate_league(self, league_id: int) -> int:
        removed = self.cache.invalidate_league(int(league_id))
        logger.info(f"Invalidated {removed} cached resource(s) for league={league_id}.")
        return removed

    def status(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "api_budget": self.scheduler.budget_status(),
            "live_refresh_running": self._live_task is not None and not self._live_task.done(),
        }

    async def _resolve(self, key: CacheKey) -> Snapshot:
        entry = self.cache.get(key)
        if entry is not None:
            return Snapshot.from_entry(entry)

        task = self.cache.pending(key) or self._start_refresh(key)

        last_good = self.cache.peek(key)
        if last_good is not None:
            return Snapshot.from_entry(last_good, stale=True)

        # Shielded so a caller giving up does not cancel the shared fetch.
        return await asyncio.shield(task)

    def _start_refresh(self, key: CacheKey) -> asyncio.Task:
        task = asyncio.ensure_future(self._refresh(key))
        self.cache.mark_pending(key, task)
        task.add_done_callback(lambda done: self._on_refresh_done(key, done))
        return task

    def _on_refresh_done(self, key: CacheKey, task: asyncio.Task) -> None:
        self.cache.clear_pending(key, task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, SyncError):
            logger.opt(exception=exc).error(f"Refresh of {key.label()} crashed")

    async def _refresh(self, key: CacheKey) -> Snapshot:
        try:
            value, is_live = await self._fetch_value(key)
        except _DEGRADABLE_ERRORS as exc:
            return self._degrade(key, exc)
        finally:
            self.cache.clear_pending(key)

        ttl_seconds = self.scheduler.ttl_for(key.resource, is_live)
        entry = await self.cache.aput(key, value, ttl_seconds, is_live=is_live)
        logger.info(f"Refreshed {key.label()} (live={is_live}, ttl={ttl_seconds}s).")
        return Snapshot.from_entry(entry)

    def _degrade(self, key: CacheKey, exc: SyncError) -> Snapshot:
        if isinstance(exc, SchemaValidationError):
            logger.error(f"Rejected {key.label()}: {exc}")
        else:
            logger.warning(f"Fetch for {key.label()} failed ({type(exc).__name__}): {exc}")

        last_good = self.cache.peek(key)
        if last_good is not None:
            logger.warning(f"Serving stale {key.label()} fetched at {last_good.fetched_at:.0f}.")
            return Snapshot.from_entry(last_good, stale=True, error=str(exc))

        raise DataUnavailable(f"No data available for {key.label()}: {exc}", cause=exc) from exc

    @staticmethod
    def _log_warnings(key: CacheKey, bundle: NormalizedBundle) -> None:
        for warning in bundle.warnings:
            logger.warning(f"Normalizing {key.label()}: {warning}")

    async def _league_info_for(self, league_id: int) -> LeagueInfo | None:
        try:
            snapshot = await self._resolve(CacheKey(ResourceKind.LEAGUE, league_id))
        except DataUnavailable as exc:
            logger.warning(f"No metadata for league {league_id}, judging liveness by calendar: {exc}")
            return None
        return snapshot.value

    async def _fetch_value(self, key: CacheKey) -> tuple[Any, bool]:
        if key.resource is ResourceKind.LEAGUE:
            bundle = normalize(await self.scheduler.fetch_league(key.league_id))
            self._log_warnings(key, bundle)
            info = bundle.league_info(key.league_id)
            if info is None:
                raise SchemaValidationError(f"League {key.league_id} missing from leagues response")
            return info, info.current_season() is not None

        season = int(key.season or 0)
        info = await self._league_info_for(key.league_id)
        is_live = self.scheduler.is_live_season(season, info)

        if key.resource is ResourceKind.TOP_SCORERS:
            known = info.season(season) if info is not None else None
            if known is not None and not known.coverage.top_scorers:
                logger.info(f"No top scorer coverage for {key.label()}; skipping fetch.")
                return [], is_live
            bundle = normalize(await self.scheduler.fetch_top_scorers(key.league_id, season))
            self._log_warnings(key, bundle)
            scorers = [
                scorer
                for scorer in bundle.top_scorers
                if scorer.league_id == key.league_id and scorer.season == season
            ]
            return scorers, is_live

        if key.resource is ResourceKind.STANDINGS:
            bundle = normalize(await self.scheduler.fetch_standings(key.league_id, season))
            self._log_warnings(key, bundle)
            rows = [
                row
                for row in bundle.standings_rows
                if row.league_id == key.league_id and row.season == season
            ]
            validate_standings(rows)
            return rows, is_live

        bundle = normalize(await self.scheduler.fetch_fixtures(key.league_id, season))
        self._log_warnings(key, bundle)
        fixtures = [
            fixture
            for fixture in bundle.fixtures
            if fixture.league_id == key.league_id and fixture.season == season
        ]
        fixtures.sort(key=lambda fixture: (fixture.date is None, fixture.date, fixture.id))
        return fixtures, is_live

    async def refresh_live_entries(self) -> int:
        """Refresh every expired live entry that is not already being fetched."""
        started: list[asyncio.Task] = []
        for entry in self.cache.entries():
            if not entry.is_live or not self.scheduler.should_refresh(entry):
                continue
            if self.cache.is_pending(entry.key):
                continue
            started.append(self._start_refresh(entry.key))

        if started:
            await asyncio.gather(*started, return_exceptions=True)
        return len(started)

    async def _live_refresh_loop(self, interval_seconds: float, stop: asyncio.Event) -> None:
        logger.info(f"Live refresh loop started (every {interval_seconds}s).")
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            refreshed = await self.refresh_live_entries()
            if refreshed:
                logger.info(f"Live refresh pass refreshed {refreshed} entr(ies).")
        logger.info("Live refresh loop stopped.")

    def start_live_refresh(self, interval_seconds: float | None = None) -> asyncio.Task:
        if self._live_task is not None and not self._live_task.done():
            return self._live_task

        interval = interval_seconds or self.config.live_refresh_interval_seconds
        self._stop_event = asyncio.Event()
        self._live_task = asyncio.ensure_future(self._live_refresh_loop(interval, self._stop_event))
        return self._live_task

    async def aclose(self) -> None:
        """Stop the live refresh loop; in-flight fetches still land in the cache."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._live_task is not None:
            await self._live_task
        self._live_task = None
        self._stop_event = None
