"""
backend/matchsync/models/live.py

Purpose:
    Live match event contracts: event types published on the provider feed,
    the normalized event forwarded by the listener, and the gateway webhook
    request/response bodies.

Dependencies:
    - pydantic
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from matchsync.utils import utcnow

DEFAULT_EVENT_TYPE = "MATCH_UPDATE"


class LiveEventType(str, Enum):
    GOAL = "GOAL"
    YELLOW_CARD = "YELLOW_CARD"
    RED_CARD = "RED_CARD"
    SUBSTITUTION = "SUBSTITUTION"
    LINEUP_PUBLISHED = "LINEUP_PUBLISHED"
    MATCH_STARTED = "MATCH_STARTED"
    MATCH_FINISHED = "MATCH_FINISHED"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


class LiveEvent(_CamelModel):
    """Ephemeral: built per message, consumed once by the gateway."""

    match_id: str
    competition_id: str | None = None
    # Kept as a raw string; unknown types must still reach the gateway's default row.
    event_type: str = DEFAULT_EVENT_TYPE
    secret: str = ""

    @field_validator("match_id", mode="before")
    @classmethod
    def _coerce_match_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("competition_id", mode="before")
    @classmethod
    def _coerce_competition_id(cls, value: Any) -> str | None:
        return _optional_str(value)


class RevalidateRequest(_CamelModel):
    """Webhook body posted by the listener. `leagueId` is the competition id."""

    match_id: str | None = None
    league_id: str | None = None
    event_type: str = DEFAULT_EVENT_TYPE
    secret: str = ""
    topic: str | None = None
    timestamp: datetime | None = None

    @field_validator("match_id", "league_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str | None:
        return _optional_str(value)

    def to_event(self) -> LiveEvent:
        return LiveEvent(
            match_id=self.match_id or "",
            competition_id=self.league_id,
            event_type=self.event_type or DEFAULT_EVENT_TYPE,
            secret=self.secret,
        )


class InvalidationSet(BaseModel):
    tags: list[str] = Field(default_factory=list)
    paths: list[str] = Field(default_factory=list)


class RevalidateResponse(_CamelModel):
    revalidated: bool
    match_id: str | None = None
    league_id: str | None = None
    event_type: str | None = None
    tags: list[str] = Field(default_factory=list)
    paths: list[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)
