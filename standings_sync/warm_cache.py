from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from loguru import logger

from standings_sync.services.config import SyncConfig
from standings_sync.services.errors import DataUnavailable
from standings_sync.services.orchestrator import SyncOrchestrator
from standings_sync.services.scheduler import season_for_date


def _dedupe_text(values: list[str]) -> list[str]:
    deduped: list[str] = []
    seen: set[str] = set()
    for value in values:
        item = str(value).strip()
        if not item or item in seen:
            continue
        seen.add(item)
        deduped.append(item)
    return deduped


async def warm(
    orchestrator: SyncOrchestrator,
    league_ids: list[int],
    season: int | None = None,
) -> dict[str, Any]:
    warnings: list[str] = []
    warmed: list[dict[str, Any]] = []

    for league_id in league_ids:
        target_season = season
        try:
            info = await orchestrator.get_league(league_id)
        except DataUnavailable as exc:
            warnings.append(str(exc))
            info = None

        if target_season is None:
            current = info.current_season() if info is not None else None
            target_season = (
                current.year if current is not None else season_for_date(orchestrator.scheduler.today())
            )

        try:
            snapshot = await orchestrator.standings_snapshot(league_id, target_season)
        except DataUnavailable as exc:
            warnings.append(str(exc))
            continue

        if snapshot.error:
            warnings.append(snapshot.error)
        warmed.append(
            {
                "league_id": league_id,
                "season": target_season,
                "rows": len(snapshot.value),
                "stale": snapshot.stale,
            }
        )

    return {
        "standings_leagues_warmed": len(warmed),
        "leagues": warmed,
        "warnings": _dedupe_text(warnings),
        "api_budget": orchestrator.scheduler.budget_status(),
    }


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Warm cached standings for the target leagues.")
    parser.add_argument("--league", type=int, action="append", dest="leagues", help="League id (repeatable)")
    parser.add_argument("--season", type=int, default=None, help="Season start year (default: current)")
    args = parser.parse_args(argv)

    config = SyncConfig.from_env()
    league_ids = args.leagues or config.target_leagues
    orchestrator = SyncOrchestrator(config)

    logger.info(f"Warming standings for leagues {league_ids}.")
    summary = asyncio.run(warm(orchestrator, league_ids, args.season))
    print(json.dumps(summary, indent=2))


if __name__ == "__main__":
    main()
