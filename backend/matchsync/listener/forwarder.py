"""
backend/matchsync/listener/forwarder.py

Purpose:
    Posts normalized live events to the cache invalidation gateway webhook.

Dependencies:
    - httpx
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from matchsync.utils import utcnow

logger = logging.getLogger("matchsync.listener")


class WebhookForwarder:
    def __init__(self, url: str, secret: str, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self._url = url
        self._secret = secret
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def build_body(self, fields: dict[str, Any], topic: str) -> dict[str, Any]:
        return {
            "matchId": fields["match_id"],
            "leagueId": fields.get("league_id"),
            "eventType": fields.get("event_type"),
            "secret": self._secret,
            "topic": topic,
            "timestamp": utcnow().isoformat(),
        }

    async def forward(self, fields: dict[str, Any], topic: str) -> bool:
        """POST one event. Returns True on a 2xx answer; never raises for HTTP failures."""
        match_id = fields["match_id"]
        try:
            resp = await self._client.post(self._url, json=self.build_body(fields, topic))
        except httpx.HTTPError as exc:
            logger.error("Webhook call for match %s failed: %s", match_id, exc)
            return False
        if resp.is_success:
            logger.info("Triggered revalidation for match %s: %s", match_id, resp.text[:300])
            return True
        logger.error("Webhook failed for match %s (%s): %s", match_id, resp.status_code, resp.text[:300])
        return False

    async def aclose(self) -> None:
        await self._client.aclose()
