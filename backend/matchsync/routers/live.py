from fastapi import APIRouter, Depends

from matchsync.dependencies import get_live_data_service
from matchsync.services.live_data_service import LiveDataService

router = APIRouter(prefix="/api/matches", tags=["live"])


@router.get("/{league_id}/{match_id}/live")
async def match_live_data(
    league_id: str,
    match_id: str,
    service: LiveDataService = Depends(get_live_data_service),
):
    return await service.snapshot(league_id, match_id)
