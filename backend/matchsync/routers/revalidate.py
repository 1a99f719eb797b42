"""
backend/matchsync/routers/revalidate.py

Purpose:
    Cache invalidation webhooks. /api/revalidate-match is called by the
    live-event listener with the shared secret in the body;
    /api/revalidate-matcher-cache drops the match list caches on demand.

Dependencies:
    - matchsync.services.invalidation_service
"""

from fastapi import APIRouter, Depends

from matchsync.dependencies import get_invalidation_gateway
from matchsync.models.live import RevalidateRequest
from matchsync.services.auth_service import verify_cron_request
from matchsync.services.invalidation_service import SYNC_SCOPE, CacheInvalidationGateway
from matchsync.utils import utcnow

router = APIRouter(prefix="/api", tags=["revalidate"])


@router.post("/revalidate-match")
async def revalidate_match(
    body: RevalidateRequest,
    gateway: CacheInvalidationGateway = Depends(get_invalidation_gateway),
):
    response = await gateway.invalidate(body.to_event())
    return response.model_dump(mode="json", by_alias=True)


@router.get("/revalidate-match")
async def revalidate_match_health():
    return {
        "status": "ok",
        "message": "Revalidation endpoint is ready",
        "timestamp": utcnow().isoformat(),
    }


@router.post("/revalidate-matcher-cache", dependencies=[Depends(verify_cron_request)])
async def revalidate_matcher_cache(gateway: CacheInvalidationGateway = Depends(get_invalidation_gateway)):
    scope = await gateway.invalidate_after_sync()
    return {
        "success": True,
        "message": "Cache revalidated successfully",
        "revalidatedTags": scope.tags,
        "revalidatedPaths": scope.paths,
        "timestamp": utcnow().isoformat(),
    }


@router.get("/revalidate-matcher-cache")
async def describe_matcher_cache():
    return {
        "message": "Use POST to revalidate matcher cache",
        "tags": SYNC_SCOPE.tags,
        "paths": SYNC_SCOPE.paths,
    }
