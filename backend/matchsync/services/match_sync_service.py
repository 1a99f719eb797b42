"""
backend/matchsync/services/match_sync_service.py

Purpose:
    Reconciles the target team's provider matches into the CMS match
    collection. Records are matched by natural key (external match id +
    external competition id); absent records are created, records with
    drifted tracked fields are updated, identical ones are skipped. Custom
    (editor-made) records and CMS-only fields are never touched.

    One competition failing to fetch, or one record failing to write, is
    recorded in SyncResult.errors and the run continues.

Dependencies:
    - matchsync.providers.smc
    - matchsync.providers.base.MatchStore
    - matchsync.services.match_mapping
    - matchsync.services.invalidation_service
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from matchsync.config import settings
from matchsync.errors import ConfigurationError, ReconciliationError, UpstreamFetchError
from matchsync.models.discovery import Competition, DiscoveryCache
from matchsync.models.match import (
    TRACKED_FIELDS,
    CmsMatch,
    MatchContent,
    SingleMatchSyncResult,
    SyncError,
    SyncOptions,
    SyncResult,
)
from matchsync.models.provider import ProviderMatch
from matchsync.providers.base import MatchStore
from matchsync.providers.frontspace import frontspace_store
from matchsync.providers.smc import SmcClient, smc_client
from matchsync.services.invalidation_service import CacheInvalidationGateway, invalidation_gateway
from matchsync.services.match_mapping import match_slug, match_title, to_match_content
from matchsync.utils import current_season_year, utcnow

logger = logging.getLogger("matchsync.sync")

ALL_SEASONS = "all"


def select_competitions(cache: DiscoveryCache | None, season: str | None) -> tuple[list[Competition], SyncError | None]:
    if cache is None or cache.is_empty():
        return [], SyncError(
            code="empty_discovery_cache",
            message="Discovery cache is empty. Refresh it before syncing.",
        )
    if season == ALL_SEASONS:
        return list(cache.competitions), None
    target = season or current_season_year()
    selected = cache.competitions_for_season(target)
    if not selected:
        return [], SyncError(
            code="no_competitions_for_season",
            message=f"No competitions found for season {target}. Available seasons: {', '.join(cache.seasons())}",
        )
    return selected, None


class _CmsIndex:
    """Per-run view of the CMS collection: natural key -> record, slug -> record."""

    def __init__(self, records: list[CmsMatch]):
        self.by_key: dict[tuple[str, str], CmsMatch] = {}
        self.by_slug: dict[str, CmsMatch] = {}
        for record in records:
            self.add(record)

    def add(self, record: CmsMatch) -> None:
        if record.slug:
            self.by_slug.setdefault(record.slug, record)
        key = record.content.natural_key()
        if key is not None and not record.content.is_custom_match:
            self.by_key.setdefault(key, record)

    def lookup(self, match: ProviderMatch, slug: str) -> CmsMatch | None:
        record = self.by_key.get(match.natural_key)
        if record is not None:
            return record
        # Legacy records written before external ids were stored are adopted by slug.
        legacy = self.by_slug.get(slug)
        if legacy is not None and not legacy.content.is_custom_match and legacy.content.natural_key() is None:
            return legacy
        return None

    def free_slug(self, match: ProviderMatch, slug: str) -> str:
        if slug in self.by_slug:
            return f"{slug}-{match.match_id}"
        return slug


def merge_content(existing: MatchContent, incoming: MatchContent, synced_at: datetime) -> MatchContent:
    """Overlay tracked fields onto the stored content, keeping everything else."""
    update: dict[str, Any] = {name: getattr(incoming, name) for name in TRACKED_FIELDS}
    update["last_synced_at"] = synced_at
    return existing.model_copy(update=update)


class MatchSyncEngine:
    def __init__(
        self,
        client: SmcClient,
        store: MatchStore,
        *,
        gateway: CacheInvalidationGateway | None = None,
        post_type_id: str | None = None,
        post_type_slug: str | None = None,
        list_limit: int | None = None,
    ):
        self._client = client
        self._store = store
        self._gateway = gateway
        self._post_type_id = post_type_id
        self._post_type_slug = post_type_slug
        self._list_limit = list_limit

    @property
    def post_type_id(self) -> str:
        return self._post_type_id if self._post_type_id is not None else settings.CMS_MATCH_POST_TYPE_ID

    @property
    def post_type_slug(self) -> str:
        return self._post_type_slug or settings.CMS_MATCH_POST_TYPE_SLUG

    async def fetch_team_matches(self, competition: Competition) -> list[ProviderMatch]:
        """Home and away fixtures of the team in one competition, using its competition-scoped id."""
        scoped_id = competition.team_scoped_id
        home = await self._client.list_matches(competition.competition_id, home_team_id=scoped_id)
        away = await self._client.list_matches(competition.competition_id, away_team_id=scoped_id)
        return [*home, *away]

    async def _collect(
        self,
        competitions: list[Competition],
        result: SyncResult,
    ) -> list[tuple[ProviderMatch, Competition]]:
        unique: dict[tuple[str, str], tuple[ProviderMatch, Competition]] = {}
        for competition in competitions:
            label = f"{competition.competition_name} {competition.season_year} ({competition.competition_id})"
            if not competition.team_scoped_id:
                logger.warning("Sync: %s has no team-scoped id, skipping", label)
                result.errors.append(
                    SyncError(
                        code="missing_team_scoped_id",
                        message=f"No team-scoped id for {label}. Refresh discovery.",
                        competition_id=competition.competition_id,
                    )
                )
                continue
            try:
                matches = await self.fetch_team_matches(competition)
            except UpstreamFetchError as exc:
                logger.error("Sync: fetch failed for %s: %s", label, exc)
                result.errors.append(
                    SyncError(
                        code="upstream_fetch_failed",
                        message=f"Failed to fetch {label}: {exc}",
                        competition_id=competition.competition_id,
                    )
                )
                continue
            logger.info("Sync: %s returned %d matches", label, len(matches))
            for match in matches:
                unique.setdefault(match.natural_key, (match, competition))
        return list(unique.values())

    async def _reconcile(
        self,
        match: ProviderMatch,
        competition: Competition | None,
        index: _CmsIndex,
        *,
        synced_at: datetime,
        dry_run: bool,
    ) -> str:
        """Return "created", "updated" or "skipped". Raises ReconciliationError on write failure."""
        incoming = to_match_content(match, competition, synced_at)
        slug = match_slug(match)
        title = match_title(match)
        existing = index.lookup(match, slug)

        if existing is None:
            fields = {"title": title, "slug": index.free_slug(match, slug), "content": incoming, "extra": {}}
            if not dry_run:
                index.add(await self._store.create(self.post_type_id, fields))
            return "created"

        changed = existing.content.changed_fields(incoming)
        if not changed:
            return "skipped"

        logger.debug("Sync: %s changed fields %s", match.match_id, changed)
        if not dry_run:
            await self._store.update(
                existing.cms_id,
                {
                    "title": existing.title or title,
                    "content": merge_content(existing.content, incoming, synced_at),
                    "extra": existing.extra,
                },
            )
        return "updated"

    async def sync(self, cache: DiscoveryCache | None, options: SyncOptions | None = None) -> SyncResult:
        options = options or SyncOptions()
        run_at = utcnow()
        result = SyncResult(dry_run=options.dry_run, timestamp=run_at)

        competitions, fatal = select_competitions(cache, options.season)
        if fatal is not None:
            logger.error("Sync aborted: %s", fatal.message)
            result.errors.append(fatal)
            return result

        self._client.ensure_configured()
        if not options.dry_run and not self.post_type_id:
            raise ConfigurationError("CMS_MATCH_POST_TYPE_ID is missing.")

        logger.info(
            "Sync starting: %d competitions (season=%s, dry_run=%s, limit=%s)",
            len(competitions), options.season or current_season_year(), options.dry_run, options.limit,
        )
        work = await self._collect(competitions, result)
        if options.limit and options.limit > 0 and len(work) > options.limit:
            logger.info("Sync: limiting %d matches to %d", len(work), options.limit)
            work = work[: options.limit]

        if not work:
            logger.warning("Sync: no matches returned by the provider")
            result.success = True
            return result

        try:
            records = await self._store.list_all(
                self.post_type_slug,
                limit=self._list_limit or settings.CMS_SYNC_LIST_LIMIT,
            )
        except (UpstreamFetchError, ConfigurationError) as exc:
            logger.error("Sync aborted: could not list CMS matches: %s", exc)
            result.errors.append(SyncError(code="cms_list_failed", message=f"Could not list CMS matches: {exc}"))
            return result
        index = _CmsIndex(records)
        logger.info("Sync: %d existing CMS match records", len(records))

        for match, competition in work:
            try:
                action = await self._reconcile(match, competition, index, synced_at=run_at, dry_run=options.dry_run)
            except ReconciliationError as exc:
                logger.error("Sync: match %s (%s vs %s) failed: %s", match.match_id, match.home_team, match.away_team, exc)
                result.errors.append(
                    SyncError(
                        code="reconciliation_failed",
                        message=str(exc),
                        competition_id=match.league_id,
                        external_match_id=match.match_id,
                        home_team=match.home_team,
                        away_team=match.away_team,
                    )
                )
                continue
            setattr(result, action, getattr(result, action) + 1)

        result.success = True
        logger.info(result.summary())

        if not options.dry_run and (result.created or result.updated) and self._gateway is not None:
            await self._gateway.invalidate_after_sync()
        return result

    async def sync_single_match(self, cache: DiscoveryCache | None, external_match_id: str) -> SingleMatchSyncResult:
        """Sync one match by provider id, searched across the current season's competitions."""
        competitions, fatal = select_competitions(cache, None)
        if fatal is not None:
            return SingleMatchSyncResult(success=False, error=fatal.message)
        self._client.ensure_configured()
        if not self.post_type_id:
            raise ConfigurationError("CMS_MATCH_POST_TYPE_ID is missing.")

        target = str(external_match_id)
        found: tuple[ProviderMatch, Competition] | None = None
        for competition in competitions:
            if not competition.team_scoped_id:
                continue
            try:
                matches = await self.fetch_team_matches(competition)
            except UpstreamFetchError as exc:
                logger.warning("Single sync: fetch failed for %s: %s", competition.competition_id, exc)
                continue
            match = next((m for m in matches if m.match_id == target), None)
            if match is not None:
                found = (match, competition)
                break
        if found is None:
            return SingleMatchSyncResult(success=False, error="Match not found in provider data")

        match, competition = found
        try:
            existing = await self._store.find_by_slug_or_natural_key(
                slug=match_slug(match),
                external_match_id=match.match_id,
                external_competition_id=match.league_id,
            )
        except UpstreamFetchError as exc:
            return SingleMatchSyncResult(success=False, error=str(exc))
        index = _CmsIndex([existing] if existing is not None else [])
        try:
            action = await self._reconcile(match, competition, index, synced_at=utcnow(), dry_run=False)
        except ReconciliationError as exc:
            return SingleMatchSyncResult(success=False, error=str(exc))

        if action != "skipped" and self._gateway is not None:
            await self._gateway.invalidate_after_sync()
        logger.info("Single match sync complete: %s %s", match.match_id, action)
        return SingleMatchSyncResult(success=True, action=action)


match_sync_engine = MatchSyncEngine(smc_client, frontspace_store, gateway=invalidation_gateway)
