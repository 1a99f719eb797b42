"""
backend/matchsync/services/tagged_cache.py

Purpose:
    Process-local TTL cache whose entries carry invalidation tags and an
    optional page path. The invalidation gateway drops entries by tag or path
    so the next read goes back to the provider.

Dependencies:
    - time
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger("matchsync.tagged_cache")


@dataclass
class _Entry:
    value: Any
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)
    path: str | None = None


class TaggedCache:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    def set(
        self,
        key: str,
        value: Any,
        *,
        ttl: float,
        tags: Iterable[str] = (),
        path: str | None = None,
    ) -> None:
        self._entries[key] = _Entry(
            value=value,
            expires_at=self._clock() + max(0.0, float(ttl)),
            tags=frozenset(tags),
            path=path,
        )

    def _drop(self, predicate: Callable[[_Entry], bool]) -> int:
        doomed = [key for key, entry in self._entries.items() if predicate(entry)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def invalidate_tag(self, tag: str) -> int:
        return self._drop(lambda entry: tag in entry.tags)

    def invalidate_path(self, path: str) -> int:
        return self._drop(lambda entry: entry.path == path)

    def invalidate(self, *, tags: Iterable[str] = (), paths: Iterable[str] = ()) -> int:
        dropped = sum(self.invalidate_tag(tag) for tag in tags)
        dropped += sum(self.invalidate_path(path) for path in paths)
        if dropped:
            logger.debug("Tagged cache dropped %d entries", dropped)
        return dropped

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


tagged_cache = TaggedCache()
