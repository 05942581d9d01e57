from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_COUNTRY_CODE = "UNKNOWN"
UNKNOWN_COUNTRY_NAME = "Unknown"
UNKNOWN_LEAGUE_TYPE = "Unknown"


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class League(Record):
    id: int
    name: str
    country: str = UNKNOWN_COUNTRY_NAME
    country_code: str = UNKNOWN_COUNTRY_CODE
    country_flag: str = ""
    type: str = UNKNOWN_LEAGUE_TYPE
    logo: str = ""


class Coverage(Record):
    fixtures_events: bool = False
    fixtures_lineups: bool = False
    fixtures_statistics: bool = False
    fixtures_players: bool = False
    standings: bool = False
    players: bool = False
    top_scorers: bool = False
    top_assists: bool = False
    top_cards: bool = False
    injuries: bool = False
    predictions: bool = False
    odds: bool = False


class Season(Record):
    league_id: int
    year: int
    start: dt.date | None = None
    end: dt.date | None = None
    current: bool = False
    coverage: Coverage = Field(default_factory=Coverage)


class RecordSplit(Record):
    played: int = 0
    win: int = 0
    draw: int = 0
    lose: int = 0
    goals_for: int = 0
    goals_against: int = 0


class StandingsRow(Record):
    league_id: int
    season: int
    group: str = ""
    rank: int
    team_id: int
    team_name: str
    team_logo: str = ""
    points: int = 0
    goals_diff: int = 0
    form: str = ""
    status: str = ""
    description: str = ""
    all: RecordSplit = Field(default_factory=RecordSplit)
    home: RecordSplit = Field(default_factory=RecordSplit)
    away: RecordSplit = Field(default_factory=RecordSplit)
    update: dt.datetime | None = None


class Fixture(Record):
    id: int
    league_id: int
    season: int
    round: str = ""
    date: dt.datetime | None = None
    status_short: str = ""
    status_long: str = ""
    elapsed: int | None = None
    home_team_id: int
    home_team_name: str
    away_team_id: int
    away_team_name: str
    home_goals: int | None = None
    away_goals: int | None = None


class TopScorer(Record):
    league_id: int
    season: int
    rank: int
    player_id: int
    player_name: str
    player_photo: str = ""
    nationality: str = ""
    team_id: int | None = None
    team_name: str = ""
    team_logo: str = ""
    appearances: int = 0
    goals: int = 0
    assists: int = 0
    penalties: int = 0


class LeagueInfo(Record):
    league: League
    seasons: list[Season] = Field(default_factory=list)

    def current_season(self) -> Season | None:
        for season in self.seasons:
            if season.current:
                return season
        return None

    def season(self, year: int) -> Season | None:
        for season in self.seasons:
            if season.year == year:
                return season
        return None


class NormalizedBundle(BaseModel):
    leagues: list[League] = Field(default_factory=list)
    seasons: list[Season] = Field(default_factory=list)
    standings_rows: list[StandingsRow] = Field(default_factory=list)
    fixtures: list[Fixture] = Field(default_factory=list)
    top_scorers: list[TopScorer] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def records(self) -> dict[str, Any]:
        """Everything but the warnings, for equality checks."""
        return self.model_dump(exclude={"warnings"})

    def league_info(self, league_id: int) -> LeagueInfo | None:
        league = next((item for item in self.leagues if item.id == league_id), None)
        if league is None:
            return None
        seasons = [item for item in self.seasons if item.league_id == league_id]
        return LeagueInfo(league=league, seasons=seasons)
