"""
backend/matchsync/routers/discovery.py

Purpose:
    League discovery endpoints: read (refreshing when missing or stale), force
    refresh, and a season-grouped view for admin tooling.

Dependencies:
    - matchsync.services.discovery_service
"""

from fastapi import APIRouter, Depends, Query

from matchsync.dependencies import get_discovery_service
from matchsync.services.discovery_service import DiscoveryService

router = APIRouter(prefix="/api/discover-leagues", tags=["discovery"])


@router.get("")
async def get_discovered_leagues(
    refresh: bool = Query(False),
    service: DiscoveryService = Depends(get_discovery_service),
):
    cache, from_cache = await service.get_cache(force=refresh)
    return {
        "success": True,
        "data": cache.model_dump(mode="json", by_alias=True),
        "fromCache": from_cache,
    }


@router.post("")
async def refresh_discovered_leagues(service: DiscoveryService = Depends(get_discovery_service)):
    cache, _ = await service.get_cache(force=True)
    return {
        "success": True,
        "data": cache.model_dump(mode="json", by_alias=True),
        "message": "League cache refreshed successfully",
    }


@router.get("/seasons")
async def discovered_seasons(service: DiscoveryService = Depends(get_discovery_service)):
    cache, from_cache = await service.get_cache()
    return {
        "success": True,
        "teamName": cache.team_name,
        "lastUpdated": cache.last_updated.isoformat() if cache.last_updated else None,
        "seasons": [group.model_dump(mode="json", by_alias=True) for group in cache.grouped_by_season()],
        "fromCache": from_cache,
    }
