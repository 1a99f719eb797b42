from abc import ABC, abstractmethod
from typing import Any

from matchsync.models.match import CmsMatch


class MatchStore(ABC):
    """Abstract CMS match collection, treated as an opaque upsert-capable store."""

    @abstractmethod
    async def list_all(self, post_type: str, *, limit: int) -> list[CmsMatch]:
        """Return up to `limit` match records of the given post type, custom ones included."""
        ...

    @abstractmethod
    async def find_by_slug_or_natural_key(
        self,
        *,
        slug: str | None = None,
        external_match_id: str | None = None,
        external_competition_id: str | None = None,
    ) -> CmsMatch | None:
        """Look a record up by natural key first, then by slug.

        Records flagged is_custom_match are never returned by the natural-key
        lookup.
        """
        ...

    @abstractmethod
    async def create(self, post_type_id: str, fields: dict[str, Any]) -> CmsMatch:
        """Create a record. `fields` holds title, slug and a MatchContent under "content"."""
        ...

    @abstractmethod
    async def update(self, cms_id: str, fields: dict[str, Any]) -> CmsMatch:
        """Update a record. `fields` holds title, content and CMS-only "extra" fields to keep."""
        ...
