"""
backend/matchsync/listener/messages.py

Purpose:
    Ingestion boundary for provider feed messages. Payload field names vary
    between publishers, so each logical field is resolved through an ordered
    alias list exactly once, here; nothing downstream sees raw keys.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from matchsync.models.live import DEFAULT_EVENT_TYPE

logger = logging.getLogger("matchsync.listener")

# Logical field -> candidate payload keys, first non-empty wins.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "match_id": ("matchId", "id", "match_id"),
    "league_id": ("leagueId", "league_id", "league"),
    "event_type": ("eventType", "event_type", "type"),
}

_DEFAULTS: dict[str, Any] = {"event_type": DEFAULT_EVENT_TYPE}


def _present(value: Any) -> bool:
    return value is not None and value != "" and value is not False


def resolve_fields(body: dict[str, Any]) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for field, aliases in FIELD_ALIASES.items():
        value = next((body[key] for key in aliases if _present(body.get(key))), None)
        resolved[field] = value if value is not None else _DEFAULTS.get(field)
    return resolved


def decode_body(raw: Any) -> dict[str, Any]:
    """Turn a transport payload (dict, str, bytes or chunks of bytes) into a dict."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    elif not isinstance(raw, str) and raw is not None:
        try:
            raw = b"".join(bytes(chunk) for chunk in raw).decode("utf-8")
        except TypeError:
            return {}
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        logger.warning("Message body is not JSON, ignoring: %.200s", raw)
        return {}
    return body if isinstance(body, dict) else {}
