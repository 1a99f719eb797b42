"""
backend/matchsync/routers/audit.py

Purpose:
    Read-only cleanup preview: which CMS match records do not involve the
    target team. Deletion stays a manual step in the CMS admin.

Dependencies:
    - matchsync.services.match_audit_service
"""

from fastapi import APIRouter, Depends

from matchsync.config import settings
from matchsync.dependencies import get_auditor
from matchsync.services.match_audit_service import NonTargetMatchAuditor

router = APIRouter(prefix="/api/cleanup-matches", tags=["audit"])

_INSTRUCTIONS = "Delete these matches manually in the CMS admin. IDs are provided for each match."


async def _preview(auditor: NonTargetMatchAuditor) -> dict:
    preview = await auditor.preview()
    team = settings.TEAM_NAME or "target team"
    body = preview.model_dump(mode="json", by_alias=True)
    return {
        "success": True,
        "message": f"Found {len(preview.to_delete)} non-{team} matches to delete, {len(preview.to_keep)} to keep",
        "toDeleteCount": len(preview.to_delete),
        "toKeepCount": len(preview.to_keep),
        "toDelete": body["toDelete"],
        "toKeep": body["toKeep"],
        "instructions": _INSTRUCTIONS,
        "timestamp": body["timestamp"],
    }


@router.get("")
async def preview_cleanup(auditor: NonTargetMatchAuditor = Depends(get_auditor)):
    return await _preview(auditor)


@router.post("")
async def preview_cleanup_post(auditor: NonTargetMatchAuditor = Depends(get_auditor)):
    return await _preview(auditor)
