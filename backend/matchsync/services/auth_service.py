"""
backend/matchsync/services/auth_service.py

Purpose:
    Shared-secret checks for machine-to-machine endpoints (cron trigger).
    All comparisons are constant-time.

Dependencies:
    - matchsync.config
"""

from __future__ import annotations

import logging
import secrets

from fastapi import Request

from matchsync.config import settings
from matchsync.errors import AuthorizationError, ConfigurationError

logger = logging.getLogger("matchsync.auth")


def secret_matches(provided: str | None, expected: str) -> bool:
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode(), expected.encode())


def _bearer(request: Request) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def _cron_secret_or_dev_bypass() -> str | None:
    """Configured secret, or None when unauthenticated access is allowed (development only)."""
    expected = settings.CRON_SECRET
    if expected:
        return expected
    if settings.ENVIRONMENT == "development":
        return None
    raise ConfigurationError("CRON_SECRET is missing.")


async def verify_cron_request(request: Request) -> None:
    """FastAPI dependency: Authorization: Bearer <secret> or x-cron-secret: <secret>."""
    expected = _cron_secret_or_dev_bypass()
    if expected is None:
        return
    if secret_matches(_bearer(request), expected) or secret_matches(request.headers.get("x-cron-secret"), expected):
        return
    logger.warning("Rejected cron request on %s", request.url.path)
    raise AuthorizationError("Invalid cron secret.")


async def verify_cron_query(request: Request) -> None:
    """FastAPI dependency for manual GET triggers: ?secret=<secret> (headers also accepted)."""
    expected = _cron_secret_or_dev_bypass()
    if expected is None:
        return
    if secret_matches(request.query_params.get("secret"), expected):
        return
    await verify_cron_request(request)
