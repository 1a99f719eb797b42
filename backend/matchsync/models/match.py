"""
backend/matchsync/models/match.py

Purpose:
    CMS match record contracts plus the sync and audit result payloads.

    A CMS match is identified across sync runs by its natural key
    (external_match_id, external_competition_id). Content fields listed in
    TRACKED_FIELDS are owned by the sync engine; anything else the CMS stores
    on the record lives in CmsMatch.extra and is never overwritten.

Dependencies:
    - pydantic
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from matchsync.utils import utcnow

TRACKED_FIELDS: tuple[str, ...] = (
    "home_team",
    "away_team",
    "kickoff_date",
    "kickoff_time",
    "venue",
    "status",
    "goals_home",
    "goals_away",
    "competition_name",
    "season",
    "external_match_id",
    "external_competition_id",
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchContent(_CamelModel):
    home_team: str = ""
    away_team: str = ""
    kickoff_date: str = ""
    kickoff_time: str = ""
    venue: str = ""
    status: str = ""
    goals_home: int = 0
    goals_away: int = 0
    competition_name: str = ""
    season: str = ""
    external_match_id: str | None = None
    external_competition_id: str | None = None
    is_custom_match: bool = False
    last_synced_at: datetime | None = None

    def natural_key(self) -> tuple[str, str] | None:
        if not self.external_match_id or not self.external_competition_id:
            return None
        return (str(self.external_match_id), str(self.external_competition_id))

    def tracked_values(self) -> dict[str, str]:
        """Tracked fields as strings, so CMS select/number drift ("2" vs 2) compares equal."""
        values = {}
        for name in TRACKED_FIELDS:
            value = getattr(self, name)
            values[name] = "" if value is None else str(value)
        return values

    def changed_fields(self, other: MatchContent) -> list[str]:
        mine = self.tracked_values()
        theirs = other.tracked_values()
        return [name for name in TRACKED_FIELDS if mine[name] != theirs[name]]


class CmsMatch(_CamelModel):
    cms_id: str
    title: str = ""
    slug: str = ""
    content: MatchContent = Field(default_factory=MatchContent)
    extra: dict[str, Any] = Field(default_factory=dict)


class SyncOptions(_CamelModel):
    dry_run: bool = False
    limit: int | None = None
    season: str | None = None  # None = current season, "all" = every cached season


SyncErrorCode = Literal[
    "empty_discovery_cache",
    "no_competitions_for_season",
    "missing_team_scoped_id",
    "upstream_fetch_failed",
    "cms_list_failed",
    "reconciliation_failed",
]


class SyncError(_CamelModel):
    code: SyncErrorCode
    message: str
    competition_id: str | None = None
    external_match_id: str | None = None
    home_team: str | None = None
    away_team: str | None = None


class SyncResult(_CamelModel):
    success: bool = False
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[SyncError] = Field(default_factory=list)
    dry_run: bool = False
    timestamp: datetime = Field(default_factory=utcnow)

    def summary(self) -> str:
        mode = "(DRY RUN) " if self.dry_run else ""
        text = f"{mode}Sync complete: {self.created} created, {self.updated} updated, {self.skipped} skipped"
        if self.errors:
            text += f", {len(self.errors)} errors"
        return text


class SingleMatchSyncResult(_CamelModel):
    success: bool
    action: Literal["created", "updated", "skipped"] | None = None
    error: str | None = None


class AuditEntry(_CamelModel):
    id: str
    title: str
    home_team: str
    away_team: str
    date: str


class AuditPreview(_CamelModel):
    to_delete: list[AuditEntry] = Field(default_factory=list)
    to_keep: list[AuditEntry] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
