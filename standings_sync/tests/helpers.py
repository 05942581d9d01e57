from __future__ import annotations

import asyncio
import copy
from typing import Any, Callable

import requests

# 2024-10-01T00:00:00Z: the 2024 season is the running one.
BASE_TIMESTAMP = 1727740800.0

# team id, name, won, drawn, lost, goals for, goals against, form
PREMIER_LEAGUE_2022 = [
    (50, "Manchester City", 28, 5, 5, 94, 33, "LDWWW"),
    (42, "Arsenal", 26, 6, 6, 88, 43, "WLLWW"),
    (33, "Manchester United", 23, 6, 9, 58, 43, "WWWLW"),
    (34, "Newcastle", 19, 14, 5, 68, 33, "DDLWW"),
    (40, "Liverpool", 19, 10, 9, 75, 47, "DDWWW"),
    (51, "Brighton", 18, 8, 12, 72, 53, "LLWLW"),
    (66, "Aston Villa", 18, 7, 13, 51, 46, "WLDWW"),
    (47, "Tottenham", 18, 6, 14, 70, 63, "WLWLL"),
    (55, "Brentford", 15, 14, 9, 58, 46, "WWDLW"),
    (36, "Fulham", 15, 7, 16, 55, 53, "LDLWW"),
    (52, "Crystal Palace", 11, 12, 15, 40, 49, "DDLWL"),
    (49, "Chelsea", 11, 11, 16, 38, 47, "DDLDL"),
    (39, "Wolves", 11, 8, 19, 31, 58, "LLWLD"),
    (48, "West Ham", 11, 7, 20, 42, 55, "WLLWL"),
    (35, "Bournemouth", 11, 6, 21, 37, 71, "LLLWL"),
    (65, "Nottingham Forest", 9, 11, 18, 38, 68, "LWWDL"),
    (45, "Everton", 8, 12, 18, 34, 57, "WDLDL"),
    (46, "Leicester", 9, 7, 22, 51, 68, "WDLDL"),
    (63, "Leeds", 7, 10, 21, 48, 78, "LLDLL"),
    (41, "Southampton", 6, 7, 25, 36, 73, "DLLLL"),
]


def _split(won: int, drawn: int, lost: int, goals_for: int, goals_against: int) -> dict[str, Any]:
    return {
        "played": won + drawn + lost,
        "win": won,
        "draw": drawn,
        "lose": lost,
        "goals": {"for": goals_for, "against": goals_against},
    }


def standings_row(
    rank: int,
    team_id: int,
    name: str,
    won: int,
    drawn: int,
    lost: int,
    goals_for: int,
    goals_against: int,
    form: str | None = "WWWWW",
    group: str = "Premier League",
) -> dict[str, Any]:
    home_won, home_drawn = (won + 1) // 2, drawn // 2
    home_lost = max(0, min(lost, (won + drawn + lost) // 2 - home_won - home_drawn))
    home_for, home_against = (goals_for + 1) // 2, goals_against // 2
    return {
        "rank": rank,
        "team": {
            "id": team_id,
            "name": name,
            "logo": f"https://media.api-sports.io/football/teams/{team_id}.png",
        },
        "points": won * 3 + drawn,
        "goalsDiff": goals_for - goals_against,
        "group": group,
        "form": form,
        "status": "same",
        "description": None,
        "all": _split(won, drawn, lost, goals_for, goals_against),
        "home": _split(home_won, home_drawn, home_lost, home_for, home_against),
        "away": _split(
            won - home_won,
            drawn - home_drawn,
            lost - home_lost,
            goals_for - home_for,
            goals_against - home_against,
        ),
        "update": "2023-05-29T00:00:00+00:00",
    }


def standings_payload(
    league_id: int = 39,
    season: int = 2022,
    rows: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    if rows is None:
        rows = [
            standings_row(rank, *team)
            for rank, team in enumerate(PREMIER_LEAGUE_2022, start=1)
        ]
    return {
        "get": "standings",
        "parameters": {"league": str(league_id), "season": str(season)},
        "errors": [],
        "results": 1,
        "response": [
            {
                "league": {
                    "id": league_id,
                    "name": "Premier League",
                    "country": "England",
                    "logo": f"https://media.api-sports.io/football/leagues/{league_id}.png",
                    "flag": "https://media.api-sports.io/flags/gb.svg",
                    "season": season,
                    "standings": [rows],
                }
            }
        ],
    }


def _coverage(standings: bool = True, top_scorers: bool = True) -> dict[str, Any]:
    return {
        "fixtures": {
            "events": True,
            "lineups": True,
            "statistics_fixtures": True,
            "statistics_players": True,
        },
        "standings": standings,
        "players": True,
        "top_scorers": top_scorers,
        "top_assists": True,
        "top_cards": True,
        "injuries": True,
        "predictions": True,
        "odds": False,
    }


def season_raw(
    year: int,
    current: bool,
    start: str | None = None,
    end: str | None = None,
    top_scorers: bool = True,
) -> dict[str, Any]:
    return {
        "year": year,
        "start": start or f"{year}-08-05",
        "end": end or f"{year + 1}-05-28",
        "current": current,
        "coverage": _coverage(top_scorers=top_scorers),
    }


def leagues_payload(
    league_id: int = 39,
    seasons: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    if seasons is None:
        seasons = [season_raw(2022, False), season_raw(2023, False), season_raw(2024, True)]
    return {
        "get": "leagues",
        "parameters": {"id": str(league_id)},
        "errors": [],
        "results": 1,
        "response": [
            {
                "league": {
                    "id": league_id,
                    "name": "Premier League",
                    "type": "League",
                    "logo": f"https://media.api-sports.io/football/leagues/{league_id}.png",
                },
                "country": {
                    "name": "England",
                    "code": "GB",
                    "flag": "https://media.api-sports.io/flags/gb.svg",
                },
                "seasons": seasons,
            }
        ],
    }


def world_cup_payload() -> dict[str, Any]:
    return {
        "errors": [],
        "results": 1,
        "response": [
            {
                "league": {
                    "id": 1,
                    "name": "World Cup",
                    "type": "Cup",
                    "logo": "https://media.api-sports.io/football/leagues/1.png",
                },
                "country": {"name": "World", "code": None, "flag": None},
                "seasons": [
                    season_raw(2018, False, "2018-06-14", "2018-07-15"),
                    season_raw(2022, True, "2022-11-20", "2022-12-18"),
                ],
            }
        ],
    }


def fixture_raw(
    fixture_id: int,
    date: str,
    home: tuple[int, str],
    away: tuple[int, str],
    goals: tuple[int | None, int | None] = (None, None),
    status: tuple[str, str] = ("NS", "Not Started"),
    league_id: int = 39,
    season: int = 2024,
) -> dict[str, Any]:
    return {
        "fixture": {
            "id": fixture_id,
            "date": date,
            "status": {"short": status[0], "long": status[1], "elapsed": None},
        },
        "league": {
            "id": league_id,
            "name": "Premier League",
            "country": "England",
            "logo": f"https://media.api-sports.io/football/leagues/{league_id}.png",
            "flag": "https://media.api-sports.io/flags/gb.svg",
            "season": season,
            "round": "Regular Season - 7",
        },
        "teams": {
            "home": {"id": home[0], "name": home[1], "logo": None},
            "away": {"id": away[0], "name": away[1], "logo": None},
        },
        "goals": {"home": goals[0], "away": goals[1]},
    }


# player id, name, nationality, team id, team name, appearances, goals, assists, penalties
TOP_SCORERS_2022 = [
    (1100, "E. Haaland", "Norway", 50, "Manchester City", 35, 36, 8, 7),
    (184, "H. Kane", "England", 47, "Tottenham", 38, 30, 3, 5),
    (2864, "I. Toney", "England", 55, "Brentford", 33, 20, 4, 7),
]


def scorer_raw(
    player_id: int,
    name: str,
    nationality: str,
    team_id: int,
    team_name: str,
    appearances: int,
    goals: int,
    assists: int | None,
    penalties: int | None,
    league_id: int = 39,
    season: int = 2022,
) -> dict[str, Any]:
    return {
        "player": {
            "id": player_id,
            "name": name,
            "nationality": nationality,
            "photo": f"https://media.api-sports.io/football/players/{player_id}.png",
        },
        "statistics": [
            {
                "team": {
                    "id": team_id,
                    "name": team_name,
                    "logo": f"https://media.api-sports.io/football/teams/{team_id}.png",
                },
                "league": {
                    "id": league_id,
                    "name": "Premier League",
                    "country": "England",
                    "logo": f"https://media.api-sports.io/football/leagues/{league_id}.png",
                    "flag": "https://media.api-sports.io/flags/gb.svg",
                    "season": season,
                },
                "games": {"appearences": appearances},
                "goals": {"total": goals, "assists": assists},
                "penalty": {"scored": penalties},
            }
        ],
    }


def top_scorers_payload(league_id: int = 39, season: int = 2022) -> dict[str, Any]:
    return {
        "get": "players/topscorers",
        "parameters": {"league": str(league_id), "season": str(season)},
        "errors": [],
        "results": len(TOP_SCORERS_2022),
        "response": [
            scorer_raw(*scorer, league_id=league_id, season=season) for scorer in TOP_SCORERS_2022
        ],
    }


class FakeResponse:
    def __init__(self, payload: dict, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"http status {self.status_code}")

    def json(self) -> dict:
        return copy.deepcopy(self._payload)


class FakeClock:
    def __init__(self, now: float = BASE_TIMESTAMP) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        await asyncio.sleep(0)


class FakeApi:
    """Stands in for ``requests.Session.get`` with canned payloads per path."""

    def __init__(self) -> None:
        # League metadata is looked up before most fetches, so it is served by default.
        self.routes: dict[str, Callable[[dict], FakeResponse]] = {
            "leagues": lambda params: FakeResponse(leagues_payload(int(params["id"]))),
        }
        self.calls: list[tuple[str, dict]] = []

    def route(self, path: str, payload: dict | None = None, status_code: int = 200) -> None:
        self.routes[path] = lambda params: FakeResponse(payload or {}, status_code)

    def fail(self, path: str, exc: Exception) -> None:
        def raiser(params: dict) -> FakeResponse:
            raise exc

        self.routes[path] = raiser

    def count(self, path: str) -> int:
        return sum(1 for called_path, _ in self.calls if called_path == path)

    def __call__(self, url: str, params: dict, timeout: float) -> FakeResponse:  # noqa: ARG002
        path = url.rsplit("/", 1)[-1]
        self.calls.append((path, dict(params)))
        handler = self.routes.get(path)
        if handler is None:
            raise AssertionError(f"Unexpected upstream call to /{path}")
        return handler(params)
