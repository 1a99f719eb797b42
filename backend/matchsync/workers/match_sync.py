"""
backend/matchsync/workers/match_sync.py

Purpose:
    Scheduled match sync. Refreshes the discovery snapshot when it is missing
    or stale, then runs the same sync as the cron endpoint for the current
    season.

Dependencies:
    - matchsync.services.discovery_service
    - matchsync.services.match_sync_service
"""

import logging

from matchsync.errors import ConfigurationError, UpstreamFetchError
from matchsync.models.match import SyncOptions
from matchsync.services.discovery_service import discovery_service
from matchsync.services.match_sync_service import match_sync_engine

logger = logging.getLogger("matchsync.match_sync_worker")


async def run_match_sync() -> None:
    """Runs every SYNC_INTERVAL_MINUTES via scheduler when SYNC_SCHEDULE_ENABLED."""
    try:
        cache, _ = await discovery_service.get_cache()
    except (UpstreamFetchError, ConfigurationError) as exc:
        logger.error("Scheduled sync skipped, discovery unavailable: %s", exc)
        return
    try:
        result = await match_sync_engine.sync(cache, SyncOptions())
    except ConfigurationError as exc:
        logger.error("Scheduled sync skipped: %s", exc)
        return
    if result.errors:
        for error in result.errors:
            logger.warning("Scheduled sync error [%s]: %s", error.code, error.message)
    logger.info("Scheduled %s", result.summary())
