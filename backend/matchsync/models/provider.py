"""
backend/matchsync/models/provider.py

Purpose:
    Response shapes of the SMC sports-data API. Field names follow the
    provider's hyphenated JSON keys through aliases; unknown keys are ignored so
    additive provider changes do not break validation.

Dependencies:
    - pydantic
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _ProviderModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProviderLeague(_ProviderModel):
    league_id: str = Field(alias="LeagueId")
    league_name: str = Field(alias="LeagueName")
    start_date: str = Field(default="", alias="StartDate")
    end_date: str = Field(default="", alias="EndDate")
    tournament_id: int = Field(default=0, alias="tournamentID")

    @field_validator("league_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)


class ProviderTeam(_ProviderModel):
    team_id: str = Field(alias="team-id")
    external_id: str | None = Field(default=None, alias="external-id")
    name: str = ""
    engaging_team: str | None = Field(default=None, alias="engaging-team")

    @field_validator("team_id", "external_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return None if value is None else str(value)


class ProviderTeamsResponse(_ProviderModel):
    team: list[ProviderTeam] = Field(default_factory=list)


class ProviderMatch(_ProviderModel):
    match_id: str = Field(alias="match-id")
    league_id: str = Field(alias="league-id")
    kickoff: str = ""
    modified_date: str | None = Field(default=None, alias="modified-date")
    status: str = ""
    arena_name: str | None = Field(default=None, alias="arena-name")
    home_team: str = Field(alias="home-team")
    away_team: str = Field(alias="away-team")
    home_team_id: str | None = Field(default=None, alias="home-team-id")
    away_team_id: str | None = Field(default=None, alias="away-team-id")
    round_number: int | None = Field(default=None, alias="round-number")
    goals_home: int | None = Field(default=None, alias="goals-home")
    goals_away: int | None = Field(default=None, alias="goals-away")

    @field_validator("match_id", "league_id", "home_team_id", "away_team_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @property
    def natural_key(self) -> tuple[str, str]:
        return (self.match_id, self.league_id)


class LiveStats(_ProviderModel):
    home_team_score: int | None = Field(default=None, alias="home-team-score")
    away_team_score: int | None = Field(default=None, alias="away-team-score")
    match_phase: str | None = Field(default=None, alias="match-phase")
    game_clock_in_min: int | None = Field(default=None, alias="game-clock-in-min")
    actual_start_of_first_half: str | None = Field(default=None, alias="actual-start-of-first-half")
    actual_end_of_first_half: str | None = Field(default=None, alias="actual-end-of-first-half")
    actual_start_of_second_half: str | None = Field(default=None, alias="actual-start-of-second-half")
    actual_end_of_second_half: str | None = Field(default=None, alias="actual-end-of-second-half")
