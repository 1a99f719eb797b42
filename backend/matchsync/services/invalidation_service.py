"""
backend/matchsync/services/invalidation_service.py

Purpose:
    Cache invalidation gateway for live match events. Validates the shared
    secret, maps the event type to the cache tags and page paths that must be
    dropped, and applies them to the in-process tagged cache and, when
    configured, to the rendering frontend's revalidation hook.

    Event type -> invalidation policy is a lookup table with a named default
    row; unknown event types fall back to it.

Dependencies:
    - httpx (frontend forwarder)
    - matchsync.services.tagged_cache
    - matchsync.config
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterable
from typing import Protocol

import httpx

from matchsync.config import settings
from matchsync.errors import AuthorizationError, ConfigurationError
from matchsync.models.live import InvalidationSet, LiveEvent, LiveEventType, RevalidateResponse
from matchsync.services.tagged_cache import TaggedCache, tagged_cache

logger = logging.getLogger("matchsync.invalidation")

MATCHES_LIST_TAG = "matches-list"
FINISHED_MATCHES_TAG = "finished-matches"
MATCHER_TAG = "matcher"
FRONTSPACE_TAG = "frontspace"
MATCHER_PATH = "/matcher"
HOME_PATH = "/"

# Tag templates per event type; "{id}" is replaced by the match id.
_LIVE_ACTION_TAGS = ("match-{id}", "match-events-{id}", "match-live-{id}")
DEFAULT_RULE: tuple[str, ...] = ("match-{id}", MATCHES_LIST_TAG)
INVALIDATION_TABLE: dict[LiveEventType, tuple[str, ...]] = {
    LiveEventType.GOAL: _LIVE_ACTION_TAGS,
    LiveEventType.YELLOW_CARD: _LIVE_ACTION_TAGS,
    LiveEventType.RED_CARD: _LIVE_ACTION_TAGS,
    LiveEventType.SUBSTITUTION: _LIVE_ACTION_TAGS,
    LiveEventType.LINEUP_PUBLISHED: ("match-lineup-{id}", "match-{id}"),
    LiveEventType.MATCH_STARTED: ("match-{id}", MATCHES_LIST_TAG),
    LiveEventType.MATCH_FINISHED: ("match-{id}", MATCHES_LIST_TAG, FINISHED_MATCHES_TAG),
}

SYNC_SCOPE = InvalidationSet(tags=[MATCHER_TAG, FRONTSPACE_TAG], paths=[MATCHER_PATH, HOME_PATH])


def rule_for(event_type: str | None) -> tuple[str, ...]:
    try:
        return INVALIDATION_TABLE[LiveEventType(event_type)]
    except ValueError:
        return DEFAULT_RULE


def match_path(league_id: str, match_id: str) -> str:
    return f"{MATCHER_PATH}/{league_id}/{match_id}"


def compute_invalidation(event: LiveEvent) -> InvalidationSet:
    tags = [template.format(id=event.match_id) for template in rule_for(event.event_type)]
    paths = []
    if event.competition_id and event.match_id:
        paths.append(match_path(event.competition_id, event.match_id))
    paths.append(MATCHER_PATH)
    return InvalidationSet(tags=tags, paths=paths)


class InvalidationTarget(Protocol):
    async def apply(self, scope: InvalidationSet) -> None: ...


class HttpRevalidationForwarder:
    """Forwards tag/path invalidations to the rendering frontend's hook."""

    def __init__(self, url: str, secret: str, *, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self._url = url
        self._secret = secret
        self._timeout = timeout
        self._client = client

    async def apply(self, scope: InvalidationSet) -> None:
        body = {"tags": scope.tags, "paths": scope.paths, "secret": self._secret}
        if self._client is not None:
            resp = await self._client.post(self._url, json=body, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=body)
        resp.raise_for_status()


class CacheInvalidationGateway:
    def __init__(
        self,
        *,
        cache: TaggedCache | None = None,
        targets: Iterable[InvalidationTarget] | None = None,
        secret: str | None = None,
    ) -> None:
        self._cache = cache if cache is not None else tagged_cache
        self._targets = list(targets) if targets is not None else None
        self._secret = secret

    @property
    def targets(self) -> list[InvalidationTarget]:
        if self._targets is None:
            self._targets = []
            if settings.FRONTEND_REVALIDATE_URL:
                self._targets.append(
                    HttpRevalidationForwarder(settings.FRONTEND_REVALIDATE_URL, self._configured_secret())
                )
        return self._targets

    def _configured_secret(self) -> str:
        secret = self._secret if self._secret is not None else settings.REVALIDATE_SECRET
        if not secret:
            raise ConfigurationError("REVALIDATE_SECRET is missing.")
        return secret

    def verify_secret(self, provided: str | None) -> None:
        expected = self._configured_secret()
        if not secrets.compare_digest(str(provided or "").encode(), expected.encode()):
            raise AuthorizationError("Invalid revalidation secret.")

    async def invalidate_scope(self, scope: InvalidationSet) -> InvalidationSet:
        """Apply a scope locally and forward it. Forwarding failures are logged, not raised."""
        self._cache.invalidate(tags=scope.tags, paths=scope.paths)
        for target in self.targets:
            try:
                await target.apply(scope)
            except httpx.HTTPError as exc:
                logger.warning("Revalidation forward to %s failed: %s", type(target).__name__, exc)
        return scope

    async def invalidate(self, event: LiveEvent) -> RevalidateResponse:
        self.verify_secret(event.secret)
        if not event.match_id:
            raise ValueError("matchId is required.")
        scope = await self.invalidate_scope(compute_invalidation(event))
        logger.info("Revalidated cache for match %s (%s)", event.match_id, event.event_type)
        return RevalidateResponse(
            revalidated=True,
            match_id=event.match_id,
            league_id=event.competition_id,
            event_type=event.event_type,
            tags=scope.tags,
            paths=scope.paths,
        )

    async def invalidate_after_sync(self) -> InvalidationSet:
        scope = await self.invalidate_scope(SYNC_SCOPE.model_copy(deep=True))
        logger.info("Matcher cache revalidated (tags=%s paths=%s)", scope.tags, scope.paths)
        return scope


invalidation_gateway = CacheInvalidationGateway()
