"""
backend/matchsync/services/live_data_service.py

Purpose:
    Cached read path for live match data (score/phase and event list). Entries
    are tagged so the invalidation gateway can drop them when a live event for
    the match arrives; the TTL is only a safety net.

Dependencies:
    - matchsync.providers.smc
    - matchsync.services.tagged_cache
"""

from __future__ import annotations

import logging
from typing import Any

from matchsync.config import settings
from matchsync.models.provider import LiveStats
from matchsync.providers.smc import SmcClient, smc_client
from matchsync.services.invalidation_service import match_path
from matchsync.services.tagged_cache import TaggedCache, tagged_cache

logger = logging.getLogger("matchsync.live_data")


class LiveDataService:
    def __init__(self, client: SmcClient, cache: TaggedCache, *, ttl_seconds: float | None = None):
        self._client = client
        self._cache = cache
        self._ttl = ttl_seconds

    @property
    def ttl(self) -> float:
        return float(self._ttl if self._ttl is not None else settings.LIVE_DATA_CACHE_TTL_SECONDS)

    async def live_stats(self, league_id: str, match_id: str) -> tuple[LiveStats, bool]:
        key = f"live-stats:{league_id}:{match_id}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached, True
        stats = await self._client.get_live_stats(league_id, match_id)
        self._cache.set(
            key,
            stats,
            ttl=self.ttl,
            tags=(f"match-{match_id}", f"match-live-{match_id}"),
            path=match_path(league_id, match_id),
        )
        return stats, False

    async def events(self, league_id: str, match_id: str) -> tuple[list[dict[str, Any]], bool]:
        key = f"events:{league_id}:{match_id}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached, True
        events = await self._client.get_match_events(league_id, match_id)
        self._cache.set(
            key,
            events,
            ttl=self.ttl,
            tags=(f"match-{match_id}", f"match-events-{match_id}"),
            path=match_path(league_id, match_id),
        )
        return events, False

    async def snapshot(self, league_id: str, match_id: str) -> dict[str, Any]:
        stats, stats_cached = await self.live_stats(league_id, match_id)
        events, events_cached = await self.events(league_id, match_id)
        logger.debug("Live data %s/%s (stats cached=%s, events cached=%s)", league_id, match_id, stats_cached, events_cached)
        return {
            "leagueId": league_id,
            "matchId": match_id,
            "stats": stats.model_dump(by_alias=True),
            "events": events,
            "fromCache": stats_cached and events_cached,
        }


live_data_service = LiveDataService(smc_client, tagged_cache)
