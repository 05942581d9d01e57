from __future__ import annotations

import asyncio
import datetime as dt
import time
from typing import Any, Awaitable, Callable

import requests
from loguru import logger

from standings_sync.services.cache_store import CacheEntry, ResourceKind
from standings_sync.services.config import SyncConfig
from standings_sync.services.errors import (
    NetworkError,
    RateLimited,
    UpstreamError,
    is_daily_limit_error_text,
)
from standings_sync.services.models import LeagueInfo
from standings_sync.services.persistent_store import PersistentStore


def season_for_date(date_value: dt.date) -> int:
    # European seasons are named after the year they start in (July to June).
    return date_value.year if date_value.month >= 7 else date_value.year - 1


def _has_upstream_errors(upstream_errors: Any) -> bool:
    if isinstance(upstream_errors, dict):
        return any(bool(value) for value in upstream_errors.values())
    return bool(upstream_errors)


def _format_upstream_errors(upstream_errors: Any) -> str:
    if isinstance(upstream_errors, dict):
        non_empty = {key: value for key, value in upstream_errors.items() if value}
        return str(non_empty)
    return str(upstream_errors)


class FetchScheduler:
    """Owns TTL policy, the request budget and the HTTP calls to api-sports."""

    def __init__(
        self,
        config: SyncConfig,
        session: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        store: PersistentStore | None = None,
    ) -> None:
        self.config = config
        self.clock = clock
        self._sleep = sleep
        self.store = store or PersistentStore(budget_path=config.api_budget_path)

        self.session = session or requests.Session()
        session_headers = {"x-rapidapi-host": config.api_host}
        if config.api_key:
            session_headers["x-apisports-key"] = config.api_key
        self.session.headers.update(session_headers)

        self._lock: asyncio.Lock | None = None
        self._last_request_monotonic = 0.0
        self.api_call_count = 0

    def ttl_for(self, kind: ResourceKind, is_live: bool) -> int:
        if kind is ResourceKind.LEAGUE:
            return self.config.stale_ttl_seconds if is_live else self.config.metadata_ttl_seconds
        return self.config.live_ttl_seconds if is_live else self.config.stale_ttl_seconds

    def should_refresh(self, entry: CacheEntry) -> bool:
        return self.clock() - entry.fetched_at > entry.ttl_seconds

    def today(self) -> dt.date:
        return dt.datetime.fromtimestamp(self.clock()).date()

    def is_live_season(self, season: int, league_info: LeagueInfo | None = None) -> bool:
        if league_info is not None:
            known = league_info.season(season)
            # A season the provider does not list is not running.
            return known is not None and known.current
        return season >= season_for_date(self.today())

    def _budget_date(self) -> str:
        return self.today().isoformat()

    def budget_status(self) -> dict[str, Any]:
        date_text = self._budget_date()
        used = min(self.config.max_daily_api_calls, self.store.get_budget_count_for_date(date_text))
        self.api_call_count = max(0, used)
        return {
            "date": date_text,
            "used": self.api_call_count,
            "limit": self.config.max_daily_api_calls,
            "remaining": max(0, self.config.max_daily_api_calls - self.api_call_count),
        }

    def _consume_api_budget(self) -> bool:
        allowed, count = self.store.consume_budget(
            self._budget_date(), self.config.max_daily_api_calls
        )
        self.api_call_count = count
        return allowed

    def _lock_api_budget_for_today(self) -> None:
        self.api_call_count = self.store.lock_budget(
            self._budget_date(), self.config.max_daily_api_calls
        )

    async def _throttle(self) -> None:
        interval = self.config.min_request_interval_seconds
        if interval <= 0:
            return

        elapsed = time.monotonic() - self._last_request_monotonic
        wait_for = interval - elapsed
        if wait_for > 0:
            await self._sleep(wait_for)

        self._last_request_monotonic = time.monotonic()

    def _get_json(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.session.get(
                f"{self.config.api_base_url}/{path}",
                params=params,
                timeout=self.config.request_timeout_seconds,
            )
        except requests.exceptions.RequestException as exc:
            raise NetworkError(str(exc)) from exc

        status = int(response.status_code)
        if status == 429:
            raise RateLimited(f"HTTP 429 from /{path}")
        if status >= 500:
            raise NetworkError(f"HTTP {status} from /{path}")

        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            raise UpstreamError(str(exc)) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError(f"Malformed JSON from /{path}: {exc}") from exc

        if not isinstance(payload, dict):
            raise NetworkError(f"Unexpected body type from /{path}")
        return payload

    async def _request_json_once(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if self._lock is None:
            self._lock = asyncio.Lock()

        # One request at a time per account, spaced by the minimum interval.
        async with self._lock:
            if not await asyncio.to_thread(self._consume_api_budget):
                raise RateLimited(
                    f"Daily API call budget reached ({self.api_call_count}/{self.config.max_daily_api_calls})"
                )
            await self._throttle()
            try:
                payload = await asyncio.to_thread(self._get_json, path, params)
            except RateLimited:
                await asyncio.to_thread(self._lock_api_budget_for_today)
                raise

        upstream_errors = payload.get("errors")
        if _has_upstream_errors(upstream_errors):
            formatted_error = _format_upstream_errors(upstream_errors)
            if is_daily_limit_error_text(formatted_error):
                await asyncio.to_thread(self._lock_api_budget_for_today)
                raise RateLimited(formatted_error)
            raise UpstreamError(formatted_error)

        return payload

    async def fetch(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.config.api_key:
            raise UpstreamError("API_SPORTS_KEY is not configured")

        # First call plus max_retries retries.
        attempts = self.config.max_retries + 1
        last_error: NetworkError | None = None
        for attempt in range(attempts):
            try:
                return await self._request_json_once(path, params)
            except NetworkError as exc:
                last_error = exc
                if attempt < attempts - 1:
                    wait = self.config.backoff_base_seconds * (2**attempt)
                    logger.warning(
                        "Request /{} {} failed (attempt {}/{}), retrying in {}s: {}",
                        path,
                        params,
                        attempt + 1,
                        attempts,
                        wait,
                        exc,
                    )
                    await self._sleep(wait)

        raise NetworkError(
            f"/{path} {params} failed after {attempts} attempts: {last_error}",
            attempts=attempts,
        )

    async def fetch_league(self, league_id: int) -> dict[str, Any]:
        return await self.fetch("leagues", {"id": league_id})

    async def fetch_standings(self, league_id: int, season: int) -> dict[str, Any]:
        return await self.fetch("standings", {"league": league_id, "season": season})

    async def fetch_fixtures(self, league_id: int, season: int) -> dict[str, Any]:
        return await self.fetch("fixtures", {"league": league_id, "season": season})

    async def fetch_top_scorers(self, league_id: int, season: int) -> dict[str, Any]:
        return await self.fetch("players/topscorers", {"league": league_id, "season": season})
