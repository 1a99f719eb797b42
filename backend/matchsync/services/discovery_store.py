"""
backend/matchsync/services/discovery_store.py

Purpose:
    Key-value persistence for the discovery snapshot. One record per key,
    replaced wholesale on every write. Backends: local JSON file (default) and
    a MongoDB collection for multi-instance deployments.

Dependencies:
    - asyncio (file I/O off the event loop)
    - matchsync.database (mongo backend)
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

import matchsync.database as _db
from matchsync.config import settings
from matchsync.models.discovery import DiscoveryCache
from matchsync.utils import utcnow

logger = logging.getLogger("matchsync.discovery_store")

DISCOVERY_KEY = "league-cache"
_COLLECTION = "discovery_cache"


class DiscoveryStore(Protocol):
    async def get(self, key: str) -> DiscoveryCache | None: ...

    async def put(self, key: str, value: DiscoveryCache) -> None: ...


class JsonFileDiscoveryStore:
    """One JSON file per key inside a directory, or a single file for the default key."""

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def _file_for(self, key: str) -> Path:
        if key == DISCOVERY_KEY:
            return self._path
        return self._path.with_name(f"{self._path.stem}.{key}{self._path.suffix}")

    def _read(self, file: Path) -> DiscoveryCache | None:
        try:
            raw = file.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return DiscoveryCache.model_validate_json(raw)
        except (ValidationError, ValueError):
            logger.error("Discovery snapshot at %s is unreadable, ignoring it", file)
            return None

    def _write(self, file: Path, value: DiscoveryCache) -> None:
        file.parent.mkdir(parents=True, exist_ok=True)
        body = json.dumps(value.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)
        # Readers see either the previous or the new snapshot, never a partial one.
        fd, tmp_name = tempfile.mkstemp(dir=file.parent, prefix=f".{file.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(body)
            os.replace(tmp_name, file)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get(self, key: str) -> DiscoveryCache | None:
        return await asyncio.to_thread(self._read, self._file_for(key))

    async def put(self, key: str, value: DiscoveryCache) -> None:
        await asyncio.to_thread(self._write, self._file_for(key), value)
        logger.info("Discovery snapshot written to %s", self._file_for(key))


class MongoDiscoveryStore:
    """Snapshot stored as a single document per key in `discovery_cache`."""

    async def get(self, key: str) -> DiscoveryCache | None:
        doc = await getattr(_db.db, _COLLECTION).find_one({"_id": key})
        if not isinstance(doc, dict):
            return None
        payload = doc.get("payload")
        if not isinstance(payload, dict):
            return None
        try:
            return DiscoveryCache.model_validate(payload)
        except ValidationError:
            logger.error("Discovery snapshot %s in MongoDB is unreadable, ignoring it", key)
            return None

    async def put(self, key: str, value: DiscoveryCache) -> None:
        now = utcnow()
        await getattr(_db.db, _COLLECTION).update_one(
            {"_id": key},
            {
                "$set": {
                    "payload": value.model_dump(mode="json", by_alias=True),
                    "updated_at": now,
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )


def build_discovery_store(backend: str | None = None) -> DiscoveryStore:
    kind = (backend or settings.DISCOVERY_STORE_BACKEND or "file").strip().lower()
    if kind == "mongo":
        return MongoDiscoveryStore()
    if kind == "file":
        return JsonFileDiscoveryStore(settings.DISCOVERY_CACHE_FILE)
    raise ValueError(f"Unknown DISCOVERY_STORE_BACKEND '{kind}' (expected 'file' or 'mongo').")
