"""
backend/matchsync/services/match_audit_service.py

Purpose:
    Read-only audit of the CMS match collection. Partitions records into those
    involving the target team (kept) and those that do not (deletion
    candidates). Nothing is deleted here; operators remove records by hand in
    the CMS using the returned ids.

Dependencies:
    - unicodedata
    - matchsync.providers.base.MatchStore
"""

from __future__ import annotations

import logging
import re
import unicodedata
from collections.abc import Iterable

from matchsync.config import settings
from matchsync.errors import ConfigurationError
from matchsync.models.match import AuditEntry, AuditPreview, CmsMatch
from matchsync.providers.base import MatchStore
from matchsync.providers.frontspace import frontspace_store

logger = logging.getLogger("matchsync.audit")

_SPACE_RE = re.compile(r"\s+")


def fold_name(raw: str) -> str:
    """Lowercase, strip accents and collapse whitespace ("Östers IF" -> "osters if")."""
    text = unicodedata.normalize("NFKD", str(raw or "").casefold())
    text = "".join(c for c in text if not unicodedata.combining(c))
    return _SPACE_RE.sub(" ", text).strip()


def involves_team(team_name: str, names: Iterable[str]) -> bool:
    folded = fold_name(team_name)
    if not folded:
        return False
    return any(name and name in folded for name in names)


def _entry(record: CmsMatch) -> AuditEntry:
    content = record.content
    return AuditEntry(
        id=record.cms_id,
        title=record.title or f"{content.home_team} vs {content.away_team}",
        home_team=content.home_team,
        away_team=content.away_team,
        date=content.kickoff_date,
    )


class NonTargetMatchAuditor:
    def __init__(
        self,
        store: MatchStore,
        *,
        team_names: Iterable[str] | None = None,
        post_type_slug: str | None = None,
        list_limit: int | None = None,
    ):
        self._store = store
        self._team_names = list(team_names) if team_names is not None else None
        self._post_type_slug = post_type_slug
        self._list_limit = list_limit

    def _names(self) -> list[str]:
        names = self._team_names if self._team_names is not None else settings.team_name_aliases()
        folded = sorted({fold_name(name) for name in names if fold_name(name)})
        if not folded:
            raise ConfigurationError("TEAM_NAME (or TEAM_NAME_ALIASES) is required for the match audit.")
        return folded

    async def preview(self) -> AuditPreview:
        names = self._names()
        records = await self._store.list_all(
            self._post_type_slug or settings.CMS_MATCH_POST_TYPE_SLUG,
            limit=self._list_limit or settings.CMS_AUDIT_LIST_LIMIT,
        )
        preview = AuditPreview()
        for record in records:
            content = record.content
            if involves_team(content.home_team, names) or involves_team(content.away_team, names):
                preview.to_keep.append(_entry(record))
            else:
                preview.to_delete.append(_entry(record))

        logger.info(
            "Audit: %d records, keep %d, delete candidates %d",
            len(records), len(preview.to_keep), len(preview.to_delete),
        )
        for entry in preview.to_delete:
            logger.debug("Audit candidate %s | %s | %s vs %s", entry.id, entry.date, entry.home_team, entry.away_team)
        return preview


match_auditor = NonTargetMatchAuditor(frontspace_store)
