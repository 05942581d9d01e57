from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, NamedTuple

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from standings_sync.services.models import Fixture, LeagueInfo, StandingsRow, TopScorer
from standings_sync.services.persistent_store import PersistentStore


class ResourceKind(str, Enum):
    LEAGUE = "league"
    STANDINGS = "standings"
    FIXTURES = "fixtures"
    TOP_SCORERS = "top_scorers"


class CacheKey(NamedTuple):
    resource: ResourceKind
    league_id: int
    season: int | None = None

    def label(self) -> str:
        if self.season is None:
            return f"{self.resource.value}:{self.league_id}"
        return f"{self.resource.value}:{self.league_id}:{self.season}"


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    value: Any
    fetched_at: float
    ttl_seconds: int
    is_live: bool = False

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl_seconds


_VALUE_ADAPTERS: dict[ResourceKind, TypeAdapter] = {
    ResourceKind.LEAGUE: TypeAdapter(LeagueInfo),
    ResourceKind.STANDINGS: TypeAdapter(list[StandingsRow]),
    ResourceKind.FIXTURES: TypeAdapter(list[Fixture]),
    ResourceKind.TOP_SCORERS: TypeAdapter(list[TopScorer]),
}


class CacheStore:
    """TTL-aware keyed storage plus the registry of in-flight fetches.

    Reads expire lazily: ``get`` treats an expired entry as missing, but the
    entry stays around for ``peek`` until it is overwritten or invalidated,
    so the last good value can still be served stale.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        persistence: PersistentStore | None = None,
    ) -> None:
        self.clock = clock
        self.persistence = persistence
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._pending: dict[CacheKey, asyncio.Future] = {}
        self._persist_lock: asyncio.Lock | None = None

    def get(self, key: CacheKey) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self.clock()):
            return None
        return entry

    def peek(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def _store(self, key: CacheKey, value: Any, ttl_seconds: int, is_live: bool) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            value=value,
            fetched_at=self.clock(),
            ttl_seconds=int(ttl_seconds),
            is_live=bool(is_live),
        )
        self._entries[key] = entry
        return entry

    def put(self, key: CacheKey, value: Any, ttl_seconds: int, is_live: bool = False) -> CacheEntry:
        entry = self._store(key, value, ttl_seconds, is_live)
        self._persist()
        return entry

    async def aput(
        self, key: CacheKey, value: Any, ttl_seconds: int, is_live: bool = False
    ) -> CacheEntry:
        """Like ``put``, but writes the snapshot file from a worker thread."""
        entry = self._store(key, value, ttl_seconds, is_live)
        if not self._persists():
            return entry

        if self._persist_lock is None:
            self._persist_lock = asyncio.Lock()
        # Payload is built under the lock so writes land in order.
        async with self._persist_lock:
            await asyncio.to_thread(self.persistence.save_snapshot, self._snapshot_payload())
        return entry

    def invalidate(self, key: CacheKey) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._persist()
        return removed

    def invalidate_league(self, league_id: int) -> int:
        doomed = [key for key in self._entries if key.league_id == league_id]
        for key in doomed:
            del self._entries[key]
        if doomed:
            self._persist()
        return len(doomed)

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())

    def is_pending(self, key: CacheKey) -> bool:
        future = self._pending.get(key)
        return future is not None and not future.done()

    def pending(self, key: CacheKey) -> asyncio.Future | None:
        future = self._pending.get(key)
        if future is None or future.done():
            return None
        return future

    def mark_pending(self, key: CacheKey, future: asyncio.Future) -> None:
        if self.is_pending(key):
            raise RuntimeError(f"A fetch is already pending for {key.label()}")
        self._pending[key] = future

    def clear_pending(self, key: CacheKey, future: asyncio.Future | None = None) -> None:
        # With a future given, only clear the slot if that future still owns it.
        if future is not None and self._pending.get(key) is not future:
            return
        self._pending.pop(key, None)

    def stats(self) -> dict[str, int]:
        now = self.clock()
        entries = self.entries()
        return {
            "entries": len(entries),
            "live": sum(1 for entry in entries if entry.is_live),
            "expired": sum(1 for entry in entries if entry.is_expired(now)),
            "pending": sum(1 for key in list(self._pending) if self.is_pending(key)),
        }

    def _persists(self) -> bool:
        return self.persistence is not None and self.persistence.persists_snapshots

    def _persist(self) -> None:
        if self._persists():
            self.persistence.save_snapshot(self._snapshot_payload())

    def _snapshot_payload(self) -> dict[str, Any]:
        rows: list[dict[str, Any]] = []
        for entry in self._entries.values():
            adapter = _VALUE_ADAPTERS[entry.key.resource]
            rows.append(
                {
                    "resource": entry.key.resource.value,
                    "league_id": entry.key.league_id,
                    "season": entry.key.season,
                    "fetched_at": entry.fetched_at,
                    "ttl_seconds": entry.ttl_seconds,
                    "is_live": entry.is_live,
                    "value": adapter.dump_python(entry.value, mode="json"),
                }
            )
        return {"entries": rows}

    def load(self) -> int:
        """Restore entries from the snapshot; returns how many were loaded."""
        if self.persistence is None:
            return 0

        payload = self.persistence.load_snapshot()
        rows = payload.get("entries", [])
        if not isinstance(rows, list):
            return 0

        loaded = 0
        for row in rows:
            if not isinstance(row, dict):
                continue
            try:
                resource = ResourceKind(row.get("resource"))
                season = row.get("season")
                key = CacheKey(resource, int(row["league_id"]), int(season) if season is not None else None)
                value = _VALUE_ADAPTERS[resource].validate_python(row.get("value"))
                entry = CacheEntry(
                    key=key,
                    value=value,
                    fetched_at=float(row["fetched_at"]),
                    ttl_seconds=int(row["ttl_seconds"]),
                    is_live=bool(row.get("is_live")),
                )
            except (KeyError, TypeError, ValueError, ValidationError) as exc:
                logger.warning(f"Skipping unreadable cache snapshot entry: {exc}")
                continue
            self._entries[key] = entry
            loaded += 1

        if loaded > 0:
            logger.info(f"Loaded cache snapshot entries: {loaded}.")
        return loaded
