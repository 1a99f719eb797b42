"""
backend/matchsync/providers/frontspace.py

Purpose:
    Frontspace headless CMS adapter for the match ("matcher") post type over
    GraphQL. Translates between the CMS content schema (Swedish field names,
    select fields stored as strings) and MatchContent.

Dependencies:
    - httpx (through matchsync.providers.http_client)
    - matchsync.providers.base.MatchStore
    - matchsync.config
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

import httpx

from matchsync.config import settings
from matchsync.errors import ConfigurationError, ReconciliationError, UpstreamFetchError
from matchsync.models.match import CmsMatch, MatchContent
from matchsync.providers.base import MatchStore
from matchsync.providers.http_client import ResilientClient
from matchsync.utils import parse_utc

logger = logging.getLogger("matchsync.frontspace")

# MatchContent attribute -> CMS content key
CMS_FIELD_MAP: dict[str, str] = {
    "home_team": "hemmalag",
    "away_team": "bortalag",
    "kickoff_date": "datum",
    "kickoff_time": "tid_for_avspark",
    "venue": "arena",
    "status": "match_status",
    "goals_home": "mal_hemmalag",
    "goals_away": "mal_bortalag",
    "competition_name": "leaguename",
    "season": "sasong",
    "external_match_id": "externalmatchid",
    "external_competition_id": "externalleagueid",
    "is_custom_match": "iscustomgame",
    "last_synced_at": "lastsyncedat",
}
_CMS_KEYS = set(CMS_FIELD_MAP.values())

_POST_FIELDS = "id title slug content status"

_LIST_QUERY = f"""
query GetPosts($storeId: String!, $postTypeSlug: String, $limit: Int, $offset: Int, $contentFilter: JSON, $slug: String) {{
  posts(storeId: $storeId, postTypeSlug: $postTypeSlug, limit: $limit, offset: $offset, contentFilter: $contentFilter, slug: $slug) {{
    {_POST_FIELDS}
  }}
}}
"""

_CREATE_MUTATION = f"""
mutation CreatePost($input: CreatePostInput!) {{
  createPost(input: $input) {{ {_POST_FIELDS} }}
}}
"""

_UPDATE_MUTATION = f"""
mutation UpdatePost($id: ID!, $input: UpdatePostInput!) {{
  updatePost(id: $id, input: $input) {{ {_POST_FIELDS} }}
}}
"""


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() == "true"


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


def parse_post(post: dict[str, Any]) -> CmsMatch:
    """Build a CmsMatch from a raw CMS post. Content may arrive as a JSON string."""
    raw_content = post.get("content") or {}
    if isinstance(raw_content, str):
        try:
            raw_content = json.loads(raw_content) if raw_content.strip() else {}
        except ValueError:
            logger.warning("Post %s has unparseable content, treating as empty", post.get("id"))
            raw_content = {}
    if not isinstance(raw_content, dict):
        raw_content = {}

    synced_raw = raw_content.get(CMS_FIELD_MAP["last_synced_at"])
    last_synced_at: datetime | None = None
    if synced_raw:
        try:
            last_synced_at = parse_utc(synced_raw)
        except (TypeError, ValueError):
            last_synced_at = None

    content = MatchContent(
        home_team=_to_str(raw_content.get("hemmalag")),
        away_team=_to_str(raw_content.get("bortalag")),
        kickoff_date=_to_str(raw_content.get("datum")),
        kickoff_time=_to_str(raw_content.get("tid_for_avspark")),
        venue=_to_str(raw_content.get("arena")),
        status=_to_str(raw_content.get("match_status")),
        goals_home=_to_int(raw_content.get("mal_hemmalag")),
        goals_away=_to_int(raw_content.get("mal_bortalag")),
        competition_name=_to_str(raw_content.get("leaguename")),
        season=_to_str(raw_content.get("sasong")),
        external_match_id=_to_str(raw_content.get("externalmatchid")) or None,
        external_competition_id=_to_str(raw_content.get("externalleagueid")) or None,
        is_custom_match=_to_bool(raw_content.get("iscustomgame")),
        last_synced_at=last_synced_at,
    )
    extra = {key: value for key, value in raw_content.items() if key not in _CMS_KEYS}
    return CmsMatch(
        cms_id=str(post.get("id") or ""),
        title=_to_str(post.get("title")),
        slug=_to_str(post.get("slug")),
        content=content,
        extra=extra,
    )


def build_cms_content(content: MatchContent, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """Serialize MatchContent to the CMS schema, keeping CMS-only fields from `extra`."""
    payload: dict[str, Any] = dict(extra or {})
    for attr, key in CMS_FIELD_MAP.items():
        value = getattr(content, attr)
        if attr == "is_custom_match":
            value = "true" if value else "false"  # Select field, not boolean
        elif attr == "last_synced_at":
            value = value.isoformat() if value else None
        payload[key] = value
    return payload


class FrontspaceMatchStore(MatchStore):
    """GraphQL-backed match store. Store id travels in the x-store-id header."""

    def __init__(
        self,
        *,
        endpoint: str | None = None,
        store_id: str | None = None,
        api_key: str | None = None,
        post_type_slug: str | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._store_id = store_id
        self._api_key = api_key
        self._post_type_slug = post_type_slug
        self._client = ResilientClient("frontspace", timeout=15.0, max_retries=0)

    def _headers(self) -> dict[str, str]:
        store_id = self._store_id if self._store_id is not None else settings.FRONTSPACE_STORE_ID
        if not store_id:
            raise ConfigurationError("FRONTSPACE_STORE_ID is missing.")
        headers = {"Content-Type": "application/json", "x-store-id": store_id}
        api_key = self._api_key if self._api_key is not None else settings.FRONTSPACE_API_KEY
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    @property
    def post_type_slug(self) -> str:
        return self._post_type_slug or settings.CMS_MATCH_POST_TYPE_SLUG

    async def _graphql(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        endpoint = self._endpoint or settings.FRONTSPACE_ENDPOINT
        if not endpoint:
            raise ConfigurationError("FRONTSPACE_ENDPOINT is missing.")
        try:
            resp = await self._client.post(
                endpoint,
                headers=self._headers(),
                json={"query": query, "variables": variables},
            )
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Frontspace request failed: {exc}") from exc
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamFetchError(f"Frontspace returned a non-JSON body ({resp.status_code})") from exc
        if resp.status_code >= 400:
            raise UpstreamFetchError(
                f"Frontspace GraphQL error: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
            )
        if body.get("errors"):
            message = (body["errors"][0] or {}).get("message") or "Unknown GraphQL error"
            raise UpstreamFetchError(f"GraphQL errors: {message}")
        return body.get("data") or {}

    async def _posts(self, **variables: Any) -> list[dict[str, Any]]:
        base = {
            "storeId": self._headers()["x-store-id"],
            "postTypeSlug": self.post_type_slug,
            "limit": 10,
            "offset": 0,
            "contentFilter": None,
            "slug": None,
        }
        base.update(variables)
        data = await self._graphql(_LIST_QUERY, base)
        return [post for post in (data.get("posts") or []) if isinstance(post, dict)]

    async def list_all(self, post_type: str, *, limit: int) -> list[CmsMatch]:
        posts = await self._posts(postTypeSlug=post_type, limit=limit)
        logger.info("Received %d %s posts from Frontspace", len(posts), post_type)
        return [parse_post(post) for post in posts]

    async def find_by_slug_or_natural_key(
        self,
        *,
        slug: str | None = None,
        external_match_id: str | None = None,
        external_competition_id: str | None = None,
    ) -> CmsMatch | None:
        if external_match_id and external_competition_id:
            key = (str(external_match_id), str(external_competition_id))
            posts = await self._posts(
                contentFilter={"externalmatchid": key[0], "externalleagueid": key[1]},
                limit=5,
            )
            for match in map(parse_post, posts):
                if not match.content.is_custom_match and match.content.natural_key() == key:
                    return match
        if slug:
            posts = await self._posts(slug=slug, limit=1)
            for match in map(parse_post, posts):
                if match.slug == slug:
                    return match
        return None

    async def create(self, post_type_id: str, fields: dict[str, Any]) -> CmsMatch:
        if not post_type_id:
            raise ConfigurationError("CMS_MATCH_POST_TYPE_ID is missing.")
        content: MatchContent = fields["content"]
        variables = {
            "input": {
                "postTypeId": post_type_id,
                "title": fields.get("title", ""),
                "slug": fields.get("slug", ""),
                "content": build_cms_content(content, fields.get("extra")),
                "status": "published",
            }
        }
        try:
            data = await self._graphql(_CREATE_MUTATION, variables)
        except UpstreamFetchError as exc:
            raise ReconciliationError(str(exc), external_match_id=content.external_match_id) from exc
        return parse_post(data.get("createPost") or {})

    async def update(self, cms_id: str, fields: dict[str, Any]) -> CmsMatch:
        content: MatchContent = fields["content"]
        variables = {
            "id": cms_id,
            "input": {
                "title": fields.get("title", ""),
                "content": build_cms_content(content, fields.get("extra")),
                "status": "published",
            },
        }
        try:
            data = await self._graphql(_UPDATE_MUTATION, variables)
        except UpstreamFetchError as exc:
            raise ReconciliationError(str(exc), external_match_id=content.external_match_id) from exc
        return parse_post(data.get("updatePost") or {})

    async def aclose(self) -> None:
        await self._client.aclose()


frontspace_store = FrontspaceMatchStore()
