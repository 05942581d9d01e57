"""Turns api-sports response bodies into canonical records.

Everything here is a pure function of its input: no I/O, no clock. The
same raw body always yields the same ``NormalizedBundle``, and
``normalize(serialize(bundle))`` reproduces the bundle's records.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from typing import Any

from standings_sync.services.errors import SchemaValidationError
from standings_sync.services.models import (
    UNKNOWN_COUNTRY_CODE,
    UNKNOWN_COUNTRY_NAME,
    UNKNOWN_LEAGUE_TYPE,
    Coverage,
    Fixture,
    League,
    NormalizedBundle,
    RecordSplit,
    Season,
    StandingsRow,
    TopScorer,
)


def _as_int(value: Any, default: int | None = 0) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any) -> str:
    return str(value or "").strip()


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _clean_logo(value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        return ""
    if text.lower().startswith(("http://", "https://")):
        return text
    return ""


def _parse_date(value: Any) -> dt.date | None:
    text = _as_str(value)
    if not text:
        return None
    try:
        return dt.date.fromisoformat(text[:10])
    except ValueError:
        return None


def _parse_iso_datetime(value: Any) -> dt.datetime | None:
    text = _as_str(value)
    if not text:
        return None

    iso_text = text.replace("Z", "+00:00")
    try:
        parsed = dt.datetime.fromisoformat(iso_text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def _iter_items(raw: Any) -> list[Any]:
    if isinstance(raw, dict):
        items = raw.get("response", [])
    else:
        items = raw
    if not isinstance(items, list):
        return []
    return items


class _LeagueIndex:
    """Keeps one League per id; leagues-endpoint records beat thin ones."""

    def __init__(self, warnings: list[str]) -> None:
        self.by_id: dict[int, League] = {}
        self.rich_ids: set[int] = set()
        self.warnings = warnings

    def add(self, league: League, rich: bool) -> bool:
        existing = self.by_id.get(league.id)
        if existing is None:
            self.by_id[league.id] = league
            if rich:
                self.rich_ids.add(league.id)
            return True

        if rich and league.id not in self.rich_ids:
            self.by_id[league.id] = league
            self.rich_ids.add(league.id)
            return True

        if rich == (league.id in self.rich_ids) and existing != league:
            self.warnings.append(
                f"League {league.id} listed twice with different details; kept '{existing.name}'."
            )
        return False


def _league_from_leagues_item(item: dict[str, Any]) -> League | None:
    league_raw = _as_dict(item.get("league"))
    country_raw = _as_dict(item.get("country"))
    league_id = _as_int(league_raw.get("id"), None)
    if league_id is None:
        return None
    return League(
        id=league_id,
        name=_as_str(league_raw.get("name")),
        country=_as_str(country_raw.get("name")) or UNKNOWN_COUNTRY_NAME,
        country_code=_as_str(country_raw.get("code")) or UNKNOWN_COUNTRY_CODE,
        country_flag=_clean_logo(country_raw.get("flag")),
        type=_as_str(league_raw.get("type")) or UNKNOWN_LEAGUE_TYPE,
        logo=_clean_logo(league_raw.get("logo")),
    )


def _league_from_thin_item(league_raw: dict[str, Any]) -> League | None:
    league_id = _as_int(league_raw.get("id"), None)
    if league_id is None:
        return None
    return League(
        id=league_id,
        name=_as_str(league_raw.get("name")),
        country=_as_str(league_raw.get("country")) or UNKNOWN_COUNTRY_NAME,
        country_flag=_clean_logo(league_raw.get("flag")),
        logo=_clean_logo(league_raw.get("logo")),
    )


def _coverage(raw: Any) -> Coverage:
    data = _as_dict(raw)
    fixtures = _as_dict(data.get("fixtures"))
    return Coverage(
        fixtures_events=bool(fixtures.get("events")),
        fixtures_lineups=bool(fixtures.get("lineups")),
        fixtures_statistics=bool(fixtures.get("statistics_fixtures")),
        fixtures_players=bool(fixtures.get("statistics_players")),
        standings=bool(data.get("standings")),
        players=bool(data.get("players")),
        top_scorers=bool(data.get("top_scorers")),
        top_assists=bool(data.get("top_assists")),
        top_cards=bool(data.get("top_cards")),
        injuries=bool(data.get("injuries")),
        predictions=bool(data.get("predictions")),
        odds=bool(data.get("odds")),
    )


def _season_sort_key(season: Season) -> tuple[dt.date, int]:
    return (season.start or dt.date.min, season.year)


def resolve_current_season(
    league_id: int, seasons: list[Season], warnings: list[str]
) -> list[Season]:
    """Leave exactly one season flagged current when a league lists several."""
    if len(seasons) < 2:
        return seasons

    flagged = [season for season in seasons if season.current]
    if len(flagged) == 1:
        return seasons

    chosen = max(seasons, key=_season_sort_key)
    if flagged:
        warnings.append(
            f"League {league_id} has {len(flagged)} seasons flagged current; "
            f"using {chosen.year} (latest start)."
        )
    else:
        warnings.append(
            f"League {league_id} has no season flagged current; using {chosen.year} (latest start)."
        )

    resolved: list[Season] = []
    for season in seasons:
        is_current = season is chosen
        if season.current != is_current:
            season = season.model_copy(update={"current": is_current})
        resolved.append(season)
    return resolved


def _seasons_from_leagues_item(
    league_id: int, raw_seasons: Any, warnings: list[str]
) -> list[Season]:
    if not isinstance(raw_seasons, list):
        return []

    seasons: list[Season] = []
    seen_years: set[int] = set()
    for raw in raw_seasons:
        data = _as_dict(raw)
        year = _as_int(data.get("year"), None)
        if year is None:
            warnings.append(f"League {league_id} has a season without a year; skipped.")
            continue
        if year in seen_years:
            warnings.append(f"League {league_id} lists season {year} twice; kept the first.")
            continue
        seen_years.add(year)
        seasons.append(
            Season(
                league_id=league_id,
                year=year,
                start=_parse_date(data.get("start")),
                end=_parse_date(data.get("end")),
                current=bool(data.get("current")),
                coverage=_coverage(data.get("coverage")),
            )
        )
    return resolve_current_season(league_id, seasons, warnings)


def _split(raw: Any) -> RecordSplit:
    data = _as_dict(raw)
    goals = _as_dict(data.get("goals"))
    return RecordSplit(
        played=_as_int(data.get("played")),
        win=_as_int(data.get("win")),
        draw=_as_int(data.get("draw")),
        lose=_as_int(data.get("lose")),
        goals_for=_as_int(goals.get("for")),
        goals_against=_as_int(goals.get("against")),
    )


def _standings_rows(
    league_id: int, season: int, raw_groups: Any, warnings: list[str]
) -> list[StandingsRow]:
    if not isinstance(raw_groups, list):
        return []

    rows: list[StandingsRow] = []
    for group in raw_groups:
        # Single-table leagues still come wrapped in a list of groups.
        group_rows = group if isinstance(group, list) else [group]
        for raw in group_rows:
            data = _as_dict(raw)
            team = _as_dict(data.get("team"))
            rank = _as_int(data.get("rank"), None)
            team_id = _as_int(team.get("id"), None)
            if rank is None or team_id is None:
                warnings.append(
                    f"Standings row without rank or team id in league {league_id} season {season}; skipped."
                )
                continue
            rows.append(
                StandingsRow(
                    league_id=league_id,
                    season=season,
                    group=_as_str(data.get("group")),
                    rank=rank,
                    team_id=team_id,
                    team_name=_as_str(team.get("name")),
                    team_logo=_clean_logo(team.get("logo")),
                    points=_as_int(data.get("points")),
                    goals_diff=_as_int(data.get("goalsDiff")),
                    form=_as_str(data.get("form")),
                    status=_as_str(data.get("status")),
                    description=_as_str(data.get("description")),
                    all=_split(data.get("all")),
                    home=_split(data.get("home")),
                    away=_split(data.get("away")),
                    update=_parse_iso_datetime(data.get("update")),
                )
            )
    return rows


def _fixture(item: dict[str, Any], warnings: list[str]) -> Fixture | None:
    fixture_raw = _as_dict(item.get("fixture"))
    league_raw = _as_dict(item.get("league"))
    teams = _as_dict(item.get("teams"))
    home = _as_dict(teams.get("home"))
    away = _as_dict(teams.get("away"))
    goals = _as_dict(item.get("goals"))
    status = _as_dict(fixture_raw.get("status"))

    fixture_id = _as_int(fixture_raw.get("id"), None)
    league_id = _as_int(league_raw.get("id"), None)
    season = _as_int(league_raw.get("season"), None)
    home_id = _as_int(home.get("id"), None)
    away_id = _as_int(away.get("id"), None)
    if None in (fixture_id, league_id, season, home_id, away_id):
        warnings.append(f"Fixture {fixture_id} is missing ids; skipped.")
        return None

    return Fixture(
        id=fixture_id,
        league_id=league_id,
        season=season,
        round=_as_str(league_raw.get("round")),
        date=_parse_iso_datetime(fixture_raw.get("date")),
        status_short=_as_str(status.get("short")),
        status_long=_as_str(status.get("long")),
        elapsed=_as_int(status.get("elapsed"), None),
        home_team_id=home_id,
        home_team_name=_as_str(home.get("name")),
        away_team_id=away_id,
        away_team_name=_as_str(away.get("name")),
        home_goals=_as_int(goals.get("home"), None),
        away_goals=_as_int(goals.get("away"), None),
    )


def _scorer_statistics(item: dict[str, Any]) -> dict[str, Any]:
    statistics = item.get("statistics")
    if isinstance(statistics, list) and statistics:
        return _as_dict(statistics[0])
    return {}


def _top_scorer(
    item: dict[str, Any], ranks: dict[tuple[int, int], int], warnings: list[str]
) -> TopScorer | None:
    player = _as_dict(item.get("player"))
    stats = _scorer_statistics(item)
    league_raw = _as_dict(stats.get("league"))
    team = _as_dict(stats.get("team"))
    games = _as_dict(stats.get("games"))
    goals = _as_dict(stats.get("goals"))
    penalty = _as_dict(stats.get("penalty"))

    player_id = _as_int(player.get("id"), None)
    league_id = _as_int(league_raw.get("id"), None)
    season = _as_int(league_raw.get("season"), None)
    if None in (player_id, league_id, season):
        warnings.append(f"Top scorer entry for player {player_id} is missing ids; skipped.")
        return None

    # The provider lists scorers best first; rank is the position per table.
    ranks[(league_id, season)] += 1
    return TopScorer(
        league_id=league_id,
        season=season,
        rank=ranks[(league_id, season)],
        player_id=player_id,
        player_name=_as_str(player.get("name")),
        player_photo=_clean_logo(player.get("photo")),
        nationality=_as_str(player.get("nationality")),
        team_id=_as_int(team.get("id"), None),
        team_name=_as_str(team.get("name")),
        team_logo=_clean_logo(team.get("logo")),
        # The provider spells it "appearences".
        appearances=_as_int(games.get("appearences", games.get("appearances"))),
        goals=_as_int(goals.get("total")),
        assists=_as_int(goals.get("assists")),
        penalties=_as_int(penalty.get("scored")),
    )


def normalize(raw: Any) -> NormalizedBundle:
    warnings: list[str] = []
    leagues = _LeagueIndex(warnings)
    seasons: list[Season] = []
    rows: list[StandingsRow] = []
    fixtures: list[Fixture] = []
    seen_fixture_ids: set[int] = set()
    scorers: list[TopScorer] = []
    scorer_ranks: dict[tuple[int, int], int] = defaultdict(int)

    for index, item in enumerate(_iter_items(raw)):
        if not isinstance(item, dict):
            warnings.append(f"Response item {index} is not an object; skipped.")
            continue

        league_raw = _as_dict(item.get("league"))

        if "fixture" in item:
            fixture = _fixture(item, warnings)
            if fixture is None or fixture.id in seen_fixture_ids:
                continue
            seen_fixture_ids.add(fixture.id)
            fixtures.append(fixture)
            thin = _league_from_thin_item(league_raw)
            if thin is not None:
                leagues.add(thin, rich=False)
            continue

        if "player" in item and "statistics" in item:
            scorer = _top_scorer(item, scorer_ranks, warnings)
            if scorer is None:
                continue
            scorers.append(scorer)
            thin = _league_from_thin_item(_as_dict(_scorer_statistics(item).get("league")))
            if thin is not None:
                leagues.add(thin, rich=False)
            continue

        if "standings" in league_raw:
            thin = _league_from_thin_item(league_raw)
            season = _as_int(league_raw.get("season"), None)
            if thin is None or season is None:
                warnings.append(f"Standings item {index} has no league id or season; skipped.")
                continue
            leagues.add(thin, rich=False)
            rows.extend(_standings_rows(thin.id, season, league_raw.get("standings"), warnings))
            continue

        if "seasons" in item or "country" in item:
            league = _league_from_leagues_item(item)
            if league is None:
                warnings.append(f"League item {index} has no id; skipped.")
                continue
            if leagues.add(league, rich=True):
                seasons = [season for season in seasons if season.league_id != league.id]
                seasons.extend(_seasons_from_leagues_item(league.id, item.get("seasons"), warnings))
            continue

        warnings.append(f"Response item {index} has an unrecognized shape; skipped.")

    rows.sort(key=lambda row: (row.league_id, row.season, row.group, row.rank))
    scorers.sort(key=lambda scorer: (scorer.league_id, scorer.season, scorer.rank))

    return NormalizedBundle(
        leagues=list(leagues.by_id.values()),
        seasons=seasons,
        standings_rows=rows,
        fixtures=fixtures,
        top_scorers=scorers,
        warnings=warnings,
    )


def validate_standings(rows: list[StandingsRow]) -> None:
    """Raise SchemaValidationError unless every table ranks 1..N."""
    ranks_by_table: dict[tuple[int, int, str], list[int]] = defaultdict(list)
    for row in rows:
        ranks_by_table[(row.league_id, row.season, row.group)].append(row.rank)

    for (league_id, season, group), ranks in ranks_by_table.items():
        expected = list(range(1, len(ranks) + 1))
        if sorted(ranks) != expected:
            label = f" group '{group}'" if group else ""
            raise SchemaValidationError(
                f"Standings for league {league_id} season {season}{label} have non-contiguous ranks: "
                f"{sorted(ranks)}"
            )


def _split_to_raw(split: RecordSplit) -> dict[str, Any]:
    return {
        "played": split.played,
        "win": split.win,
        "draw": split.draw,
        "lose": split.lose,
        "goals": {"for": split.goals_for, "against": split.goals_against},
    }


def _row_to_raw(row: StandingsRow) -> dict[str, Any]:
    return {
        "rank": row.rank,
        "team": {"id": row.team_id, "name": row.team_name, "logo": row.team_logo or None},
        "points": row.points,
        "goalsDiff": row.goals_diff,
        "group": row.group,
        "form": row.form or None,
        "status": row.status,
        "description": row.description or None,
        "all": _split_to_raw(row.all),
        "home": _split_to_raw(row.home),
        "away": _split_to_raw(row.away),
        "update": row.update.isoformat() if row.update else None,
    }


def _season_to_raw(season: Season) -> dict[str, Any]:
    coverage = season.coverage
    return {
        "year": season.year,
        "start": season.start.isoformat() if season.start else None,
        "end": season.end.isoformat() if season.end else None,
        "current": season.current,
        "coverage": {
            "fixtures": {
                "events": coverage.fixtures_events,
                "lineups": coverage.fixtures_lineups,
                "statistics_fixtures": coverage.fixtures_statistics,
                "statistics_players": coverage.fixtures_players,
            },
            "standings": coverage.standings,
            "players": coverage.players,
            "top_scorers": coverage.top_scorers,
            "top_assists": coverage.top_assists,
            "top_cards": coverage.top_cards,
            "injuries": coverage.injuries,
            "predictions": coverage.predictions,
            "odds": coverage.odds,
        },
    }


def _thin_league_raw(league: League | None, league_id: int, season: int) -> dict[str, Any]:
    if league is None:
        return {"id": league_id, "season": season}
    return {
        "id": league.id,
        "name": league.name,
        "country": league.country,
        "logo": league.logo or None,
        "flag": league.country_flag or None,
        "season": season,
    }


def serialize(bundle: NormalizedBundle) -> dict[str, Any]:
    """Render a bundle back into the provider's response shape."""
    leagues_by_id = {league.id: league for league in bundle.leagues}
    items: list[dict[str, Any]] = []

    for league in bundle.leagues:
        items.append(
            {
                "league": {
                    "id": league.id,
                    "name": league.name,
                    "type": league.type,
                    "logo": league.logo or None,
                },
                "country": {
                    "name": league.country,
                    "code": None if league.country_code == UNKNOWN_COUNTRY_CODE else league.country_code,
                    "flag": league.country_flag or None,
                },
                "seasons": [
                    _season_to_raw(season)
                    for season in bundle.seasons
                    if season.league_id == league.id
                ],
            }
        )

    tables: dict[tuple[int, int], dict[str, list[dict[str, Any]]]] = {}
    for row in bundle.standings_rows:
        groups = tables.setdefault((row.league_id, row.season), {})
        groups.setdefault(row.group, []).append(_row_to_raw(row))

    for (league_id, season), groups in tables.items():
        league_raw = _thin_league_raw(leagues_by_id.get(league_id), league_id, season)
        league_raw["standings"] = list(groups.values())
        items.append({"league": league_raw})

    for fixture in bundle.fixtures:
        league_raw = _thin_league_raw(
            leagues_by_id.get(fixture.league_id), fixture.league_id, fixture.season
        )
        league_raw["round"] = fixture.round
        items.append(
            {
                "fixture": {
                    "id": fixture.id,
                    "date": fixture.date.isoformat() if fixture.date else None,
                    "status": {
                        "long": fixture.status_long,
                        "short": fixture.status_short,
                        "elapsed": fixture.elapsed,
                    },
                },
                "league": league_raw,
                "teams": {
                    "home": {"id": fixture.home_team_id, "name": fixture.home_team_name},
                    "away": {"id": fixture.away_team_id, "name": fixture.away_team_name},
                },
                "goals": {"home": fixture.home_goals, "away": fixture.away_goals},
            }
        )

    for scorer in bundle.top_scorers:
        items.append(
            {
                "player": {
                    "id": scorer.player_id,
                    "name": scorer.player_name,
                    "nationality": scorer.nationality or None,
                    "photo": scorer.player_photo or None,
                },
                "statistics": [
                    {
                        "team": {
                            "id": scorer.team_id,
                            "name": scorer.team_name,
                            "logo": scorer.team_logo or None,
                        },
                        "league": _thin_league_raw(
                            leagues_by_id.get(scorer.league_id), scorer.league_id, scorer.season
                        ),
                        "games": {"appearences": scorer.appearances},
                        "goals": {"total": scorer.goals, "assists": scorer.assists},
                        "penalty": {"scored": scorer.penalties},
                    }
                ],
            }
        )

    return {"errors": {}, "results": len(items), "response": items}
