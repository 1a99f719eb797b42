"""
backend/matchsync/providers/smc.py

Purpose:
    Typed async wrapper over the SMC sports-data API (leagues, rosters,
    matches, live stats, match events). Injects the static secret header,
    bounds every call with a timeout, and validates response shapes. Any
    failure surfaces as UpstreamFetchError so callers can isolate it.

Dependencies:
    - httpx
    - pydantic
    - matchsync.providers.http_client
    - matchsync.config
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from matchsync.config import settings
from matchsync.errors import ConfigurationError, UpstreamFetchError
from matchsync.models.provider import (
    LiveStats,
    ProviderLeague,
    ProviderMatch,
    ProviderTeam,
    ProviderTeamsResponse,
)
from matchsync.providers.http_client import ResilientClient

logger = logging.getLogger("matchsync.smc")

_LEAGUES = TypeAdapter(list[ProviderLeague])
_MATCHES = TypeAdapter(list[ProviderMatch])


class SmcClient:
    """HTTP adapter for the SMC API. No business logic lives here."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        secret: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
    ) -> None:
        self._base_url = base_url
        self._secret = secret
        self._timeout = timeout
        self._client = ResilientClient(
            "smc",
            timeout=self._call_timeout(),
            max_retries=settings.SMC_MAX_RETRIES if max_retries is None else max_retries,
            base_delay=settings.SMC_RETRY_BASE_DELAY if base_delay is None else base_delay,
        )

    def _call_timeout(self) -> float:
        return float(self._timeout if self._timeout is not None else settings.SMC_TIMEOUT_SECONDS)

    def _build_url(self, path: str) -> str:
        base = str(self._base_url or settings.SMC_BASE_URL or "").rstrip("/")
        if not base:
            raise ConfigurationError("SMC_BASE_URL is missing.")
        return f"{base}/{path.lstrip('/')}"

    def _auth_token(self) -> str:
        secret = str(self._secret if self._secret is not None else settings.SMC_SECRET).strip()
        if not secret:
            raise ConfigurationError("SMC_SECRET is missing.")
        return secret

    def ensure_configured(self) -> None:
        """Fail fast before a run issues any request."""
        self._auth_token()
        self._build_url("")

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    async def _get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        url = self._build_url(path)
        headers = {"Authorization": self._auth_token(), "Accept": "application/json"}
        timeout = self._call_timeout()
        try:
            # One deadline for the whole call, retries included.
            resp = await asyncio.wait_for(
                self._client.get(url, headers=headers, params=params or None),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            # The cancelled request never reaches its own failure bookkeeping.
            self._client.circuit.record_failure()
            raise UpstreamFetchError(f"SMC request timed out after {timeout:g}s: {path}", endpoint=path) from exc
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"SMC request failed for {path}: {exc}", endpoint=path) from exc

        if resp.status_code >= 400:
            raise UpstreamFetchError(
                f"SMC API error: {resp.status_code} {resp.reason_phrase} for {path}",
                status_code=resp.status_code,
                endpoint=path,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamFetchError(f"SMC returned a non-JSON body for {path}", endpoint=path) from exc

    async def list_leagues(self) -> list[ProviderLeague]:
        payload = await self._get("/leagues")
        try:
            return _LEAGUES.validate_python(payload)
        except ValidationError as exc:
            raise UpstreamFetchError(f"Unexpected /leagues payload: {exc.error_count()} errors", endpoint="/leagues") from exc

    async def list_league_teams(self, league_id: str) -> list[ProviderTeam]:
        path = f"/leagues/{league_id}/teams"
        payload = await self._get(path)
        try:
            return ProviderTeamsResponse.model_validate(payload).team
        except ValidationError as exc:
            raise UpstreamFetchError(f"Unexpected roster payload for league {league_id}", endpoint=path) from exc

    async def list_matches(
        self,
        league_id: str,
        *,
        home_team_id: str | None = None,
        away_team_id: str | None = None,
    ) -> list[ProviderMatch]:
        path = f"/leagues/{league_id}/matches"
        params: dict[str, Any] = {}
        if home_team_id:
            params["home-team-id"] = home_team_id
        if away_team_id:
            params["away-team-id"] = away_team_id
        payload = await self._get(path, params=params)
        if not isinstance(payload, list):
            raise UpstreamFetchError(
                f"League {league_id} returned {type(payload).__name__} instead of a match list",
                endpoint=path,
            )
        try:
            return _MATCHES.validate_python(payload)
        except ValidationError as exc:
            raise UpstreamFetchError(f"Unexpected match payload for league {league_id}", endpoint=path) from exc

    async def get_live_stats(self, league_id: str, match_id: str) -> LiveStats:
        path = f"/leagues/{league_id}/matches/{match_id}/live-stats"
        payload = await self._get(path)
        try:
            return LiveStats.model_validate(payload)
        except ValidationError as exc:
            raise UpstreamFetchError(f"Unexpected live-stats payload for match {match_id}", endpoint=path) from exc

    async def get_match_events(
        self,
        league_id: str,
        match_id: str,
        *,
        event_id: int | None = None,
    ) -> list[dict[str, Any]]:
        path = f"/leagues/{league_id}/matches/{match_id}/events"
        params = {"event-id": event_id} if event_id and event_id > 0 else None
        payload = await self._get(path, params=params)
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise UpstreamFetchError(f"Unexpected events payload for match {match_id}", endpoint=path)
        return [item for item in payload if isinstance(item, dict)]

    async def aclose(self) -> None:
        await self._client.aclose()


smc_client = SmcClient()
