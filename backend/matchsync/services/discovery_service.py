"""
backend/matchsync/services/discovery_service.py

Purpose:
    Finds every competition the target team plays in by sweeping the provider's
    league list and each league roster, then persists the snapshot. The read
    path (DiscoveryService.get_cache) reuses a fresh snapshot and collapses
    concurrent refreshes into one in-flight discovery.

Dependencies:
    - matchsync.providers.smc
    - matchsync.services.discovery_store
    - matchsync.services.single_flight
"""

from __future__ import annotations

import logging
from datetime import timedelta

from matchsync.config import settings
from matchsync.errors import ConfigurationError, UpstreamFetchError
from matchsync.models.discovery import Competition, DiscoveryCache, TeamKeys, sort_competitions
from matchsync.models.provider import ProviderLeague, ProviderTeam
from matchsync.providers.smc import SmcClient, smc_client
from matchsync.services.discovery_store import DISCOVERY_KEY, DiscoveryStore, build_discovery_store
from matchsync.services.single_flight import SingleFlightCache
from matchsync.utils import ensure_utc, parse_utc, utcnow

logger = logging.getLogger("matchsync.discovery")


def find_team_in_roster(roster: list[ProviderTeam], team_keys: TeamKeys) -> ProviderTeam | None:
    """First roster entry matching by internal id, external id or exact name."""
    for team in roster:
        if team_keys.internal_id and team.team_id == team_keys.internal_id:
            return team
        if team_keys.external_id and team.external_id == team_keys.external_id:
            return team
        if team_keys.display_name and team.name == team_keys.display_name:
            return team
    return None


def season_year_for(league: ProviderLeague) -> str | None:
    if not league.start_date:
        return None
    try:
        return str(parse_utc(league.start_date).year)
    except ValueError:
        return None


class LeagueDiscoveryEngine:
    def __init__(self, client: SmcClient, store: DiscoveryStore, *, key: str = DISCOVERY_KEY):
        self._client = client
        self._store = store
        self._key = key

    async def discover(self, team_keys: TeamKeys) -> DiscoveryCache:
        """Run a full sweep and overwrite the stored snapshot.

        A failing league list aborts the run and leaves the stored snapshot
        untouched. A failing roster only drops that competition.
        """
        self._client.ensure_configured()
        leagues = await self._client.list_leagues()
        logger.info("Discovery: scanning %d competitions for %s", len(leagues), team_keys.display_name)

        found: list[Competition] = []
        for league in leagues:
            try:
                roster = await self._client.list_league_teams(league.league_id)
            except UpstreamFetchError as exc:
                logger.warning("Discovery: roster for %s (%s) failed: %s", league.league_name, league.league_id, exc)
                continue

            team = find_team_in_roster(roster, team_keys)
            if team is None:
                continue

            season_year = season_year_for(league)
            if season_year is None:
                logger.warning(
                    "Discovery: skipping %s (%s), unparseable start date %r",
                    league.league_name, league.league_id, league.start_date,
                )
                continue

            found.append(
                Competition(
                    competition_id=league.league_id,
                    competition_name=league.league_name,
                    start_date=league.start_date,
                    end_date=league.end_date,
                    tournament_numeric_id=league.tournament_id,
                    season_year=season_year,
                    team_scoped_id=team.team_id,
                )
            )
            logger.info("Discovery: found %s in %s (%s)", team.name, league.league_name, season_year)

        cache = DiscoveryCache(
            team_id=team_keys.internal_id,
            team_name=team_keys.display_name,
            last_updated=utcnow(),
            competitions=sort_competitions(found),
        )
        await self._store.put(self._key, cache)
        logger.info("Discovery complete: %d competitions across %d seasons", len(found), len(cache.seasons()))
        return cache


def is_stale(cache: DiscoveryCache | None, max_age_days: int | None = None) -> bool:
    if cache is None or cache.is_empty() or cache.last_updated is None:
        return True
    days = settings.DISCOVERY_STALE_DAYS if max_age_days is None else max_age_days
    if days <= 0:
        return False
    return utcnow() - ensure_utc(cache.last_updated) > timedelta(days=days)


def team_keys_from_settings() -> TeamKeys:
    if not (settings.TEAM_INTERNAL_ID or settings.TEAM_EXTERNAL_ID or settings.TEAM_NAME):
        raise ConfigurationError("Set TEAM_INTERNAL_ID, TEAM_EXTERNAL_ID or TEAM_NAME for discovery.")
    return TeamKeys(
        internal_id=settings.TEAM_INTERNAL_ID,
        external_id=settings.TEAM_EXTERNAL_ID,
        display_name=settings.TEAM_NAME,
    )


class DiscoveryService:
    """Read path over the stored snapshot, refreshing it when missing or stale."""

    def __init__(
        self,
        *,
        client: SmcClient | None = None,
        store: DiscoveryStore | None = None,
        read_cache: SingleFlightCache[DiscoveryCache] | None = None,
    ):
        self._client = client
        self._store = store
        self._read_cache = read_cache or SingleFlightCache(settings.DISCOVERY_READ_TTL_SECONDS, name="discovery")
        self._discovered: DiscoveryCache | None = None

    @property
    def store(self) -> DiscoveryStore:
        if self._store is None:
            self._store = build_discovery_store()
        return self._store

    @property
    def engine(self) -> LeagueDiscoveryEngine:
        return LeagueDiscoveryEngine(self._client or smc_client, self.store)

    async def stored(self) -> DiscoveryCache | None:
        return await self.store.get(DISCOVERY_KEY)

    async def _load(self, force: bool) -> DiscoveryCache:
        if not force:
            existing = await self.stored()
            if not is_stale(existing):
                self._discovered = None
                return existing  # type: ignore[return-value]
        cache = await self.engine.discover(team_keys_from_settings())
        self._discovered = cache
        return cache

    async def get_cache(self, *, force: bool = False) -> tuple[DiscoveryCache, bool]:
        """Return (snapshot, from_cache). from_cache is False only for callers served by a discovery run."""
        if force:
            self._read_cache.invalidate()
        else:
            cached = self._read_cache.peek()
            if cached is not None:
                return cached, True
        cache = await self._read_cache.get(lambda: self._load(force), force=force)
        return cache, cache is not self._discovered

    def invalidate(self) -> None:
        self._read_cache.invalidate()


discovery_service = DiscoveryService()
