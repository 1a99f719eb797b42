"""
backend/matchsync/services/match_mapping.py

Purpose:
    Pure mapping from provider matches to CMS match content: status
    normalization, kickoff split in the club's local timezone, slug and title.
"""

from __future__ import annotations

import re
from datetime import datetime
from functools import lru_cache
from zoneinfo import ZoneInfo

from matchsync.config import settings
from matchsync.models.discovery import Competition
from matchsync.models.match import MatchContent
from matchsync.models.provider import ProviderMatch
from matchsync.utils import parse_utc

# Provider status -> CMS select value
STATUS_MAP: dict[str, str] = {
    "Scheduled": "scheduled",
    "scheduled": "scheduled",
    "In progress": "in-progress",
    "in progress": "in-progress",
    "in-progress": "in-progress",
    "InProgress": "in-progress",
    "Live": "in-progress",
    "live": "in-progress",
    "Over": "over",
    "over": "over",
    "Finished": "over",
    "finished": "over",
    "FT": "over",
}

_SLUG_UNSAFE = re.compile(r"[^a-z0-9]")
_DASHES = re.compile(r"-+")


def map_status(status: str | None) -> str:
    raw = (status or "").strip()
    return STATUS_MAP.get(raw, raw.lower())


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_kickoff(kickoff: str) -> datetime | None:
    if not kickoff:
        return None
    try:
        return parse_utc(kickoff).astimezone(_zone(settings.MATCH_TIMEZONE))
    except ValueError:
        return None


def split_kickoff(kickoff: str) -> tuple[str, str]:
    """Return (YYYY-MM-DD, HH:MM) in MATCH_TIMEZONE, or empty strings."""
    local = local_kickoff(kickoff)
    if local is None:
        return "", ""
    return local.strftime("%Y-%m-%d"), local.strftime("%H:%M")


def _slug_part(name: str) -> str:
    return _DASHES.sub("-", _SLUG_UNSAFE.sub("-", name.lower()))


def match_slug(match: ProviderMatch) -> str:
    date, _ = split_kickoff(match.kickoff)
    return f"{date}-{_slug_part(match.home_team)}-vs-{_slug_part(match.away_team)}"


def match_title(match: ProviderMatch) -> str:
    return f"{match.home_team} vs {match.away_team}"


def to_match_content(match: ProviderMatch, competition: Competition | None, synced_at: datetime) -> MatchContent:
    kickoff_date, kickoff_time = split_kickoff(match.kickoff)
    local = local_kickoff(match.kickoff)
    return MatchContent(
        home_team=match.home_team,
        away_team=match.away_team,
        kickoff_date=kickoff_date,
        kickoff_time=kickoff_time,
        venue=match.arena_name or "",
        status=map_status(match.status),
        goals_home=match.goals_home or 0,
        goals_away=match.goals_away or 0,
        competition_name=competition.competition_name if competition else "",
        season=str(local.year) if local else "",
        external_match_id=match.match_id,
        external_competition_id=match.league_id,
        is_custom_match=False,
        last_synced_at=synced_at,
    )
