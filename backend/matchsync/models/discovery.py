"""
backend/matchsync/models/discovery.py

Purpose:
    Discovery snapshot contracts: the competitions a target team plays in, each
    with the team's competition-scoped provider id, plus season grouping views.

Dependencies:
    - pydantic.BaseModel
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TeamKeys(_CamelModel):
    """Identifying keys for the target team as the provider may know it."""

    internal_id: str
    external_id: str
    display_name: str


class Competition(_CamelModel):
    competition_id: str
    competition_name: str
    start_date: str
    end_date: str = ""
    tournament_numeric_id: int = 0
    season_year: str
    # The team's id inside this competition only; ids are not stable across competitions.
    team_scoped_id: str | None = None


class DiscoveryCache(_CamelModel):
    team_id: str
    team_name: str
    last_updated: datetime | None = None
    competitions: list[Competition] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.competitions

    def seasons(self) -> list[str]:
        return sorted({c.season_year for c in self.competitions}, key=_season_sort_key, reverse=True)

    def competitions_for_season(self, season_year: str) -> list[Competition]:
        return [c for c in self.competitions if c.season_year == season_year]

    def competition_by_id(self, competition_id: str) -> Competition | None:
        for competition in self.competitions:
            if competition.competition_id == str(competition_id):
                return competition
        return None

    def grouped_by_season(self) -> list[SeasonGroup]:
        groups: dict[str, SeasonGroup] = {}
        for competition in self.competitions:
            group = groups.setdefault(
                competition.season_year,
                SeasonGroup(season_year=competition.season_year),
            )
            group.competitions.append(competition)
        return sorted(groups.values(), key=lambda g: _season_sort_key(g.season_year), reverse=True)


class SeasonGroup(_CamelModel):
    season_year: str
    competitions: list[Competition] = Field(default_factory=list)


def _season_sort_key(season_year: str) -> int:
    try:
        return int(season_year)
    except (TypeError, ValueError):
        return 0


def sort_competitions(competitions: list[Competition]) -> list[Competition]:
    """Season newest first, then competition name A-Z."""
    return sorted(
        competitions,
        key=lambda c: (-_season_sort_key(c.season_year), c.competition_name.casefold(), c.competition_id),
    )
