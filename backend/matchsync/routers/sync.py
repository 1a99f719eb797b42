"""
backend/matchsync/routers/sync.py

Purpose:
    Cron-triggered match synchronization. POST authenticates with headers
    (Authorization: Bearer or x-cron-secret); GET is the manual variant and
    also accepts ?secret=.

Dependencies:
    - matchsync.services.match_sync_service
    - matchsync.services.discovery_service
    - matchsync.services.auth_service
"""

import logging

from fastapi import APIRouter, Depends, Query

from matchsync.dependencies import get_discovery_service, get_sync_engine
from matchsync.models.match import SingleMatchSyncResult, SyncOptions, SyncResult
from matchsync.services.auth_service import verify_cron_query, verify_cron_request
from matchsync.services.discovery_service import DiscoveryService
from matchsync.services.match_sync_service import MatchSyncEngine

router = APIRouter(prefix="/api/cron", tags=["sync"])
logger = logging.getLogger("matchsync.sync")


def _sync_response(result: SyncResult, limit: int | None) -> dict:
    return {
        "success": result.success,
        "dryRun": result.dry_run,
        "limit": limit,
        "message": result.summary(),
        "errors": [error.model_dump(mode="json", by_alias=True, exclude_none=True) for error in result.errors],
        "details": result.model_dump(mode="json", by_alias=True),
    }


async def _run_sync(
    discovery: DiscoveryService,
    engine: MatchSyncEngine,
    *,
    dry_run: bool,
    limit: int | None,
    season: str | None,
) -> dict:
    options = SyncOptions(dry_run=dry_run, limit=limit, season=season or None)
    logger.info("Sync triggered: dry_run=%s limit=%s season=%s", dry_run, limit, season)
    result = await engine.sync(await discovery.stored(), options)
    return _sync_response(result, limit)


@router.post("/sync-matches", dependencies=[Depends(verify_cron_request)])
async def trigger_sync(
    dry_run: bool = Query(False, alias="dryRun"),
    limit: int | None = Query(None, ge=1),
    season: str | None = Query(None),
    discovery: DiscoveryService = Depends(get_discovery_service),
    engine: MatchSyncEngine = Depends(get_sync_engine),
):
    return await _run_sync(discovery, engine, dry_run=dry_run, limit=limit, season=season)


@router.get("/sync-matches", dependencies=[Depends(verify_cron_query)])
async def trigger_sync_manual(
    dry_run: bool = Query(False, alias="dryRun"),
    limit: int | None = Query(None, ge=1),
    season: str | None = Query(None),
    discovery: DiscoveryService = Depends(get_discovery_service),
    engine: MatchSyncEngine = Depends(get_sync_engine),
):
    return await _run_sync(discovery, engine, dry_run=dry_run, limit=limit, season=season)


@router.post(
    "/sync-matches/{external_match_id}",
    dependencies=[Depends(verify_cron_request)],
    response_model=SingleMatchSyncResult,
    response_model_by_alias=True,
)
async def trigger_single_match_sync(
    external_match_id: str,
    discovery: DiscoveryService = Depends(get_discovery_service),
    engine: MatchSyncEngine = Depends(get_sync_engine),
):
    return await engine.sync_single_match(await discovery.stored(), external_match_id)
