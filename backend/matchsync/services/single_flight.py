"""
backend/matchsync/services/single_flight.py

Purpose:
    Short-lived read-through cache that collapses concurrent loads into one
    in-flight task. The first caller starts the load and publishes the task;
    everyone else awaits the same task, except that a forced caller never
    joins a plain load. The slot is cleared once the task finishes, whether
    it succeeded or failed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

logger = logging.getLogger("matchsync.single_flight")

T = TypeVar("T")


class SingleFlightCache(Generic[T]):
    def __init__(self, ttl_seconds: float, *, name: str = "single_flight", clock: Callable[[], float] = time.monotonic):
        self._ttl = max(0.0, float(ttl_seconds))
        self._name = name
        self._clock = clock
        self.value: T | None = None
        self.expires_at: float = 0.0
        self.in_flight: asyncio.Task[T] | None = None
        self.in_flight_forced = False

    def _fresh(self) -> bool:
        return self.value is not None and self._clock() < self.expires_at

    def peek(self) -> T | None:
        """The cached value while it is fresh, without loading."""
        return self.value if self._fresh() else None

    async def get(self, loader: Callable[[], Awaitable[T]], *, force: bool = False) -> T:
        if not force and self._fresh():
            return self.value  # type: ignore[return-value]

        while True:
            task = self.in_flight
            if task is None or task.done():
                task = asyncio.ensure_future(loader())
                self.in_flight = task
                self.in_flight_forced = force
                task.add_done_callback(self._settle)
                break
            if force and not self.in_flight_forced:
                # A plain load may hand back the old value; a forced caller waits it out and reloads.
                logger.debug("[%s] forced load waiting for plain in-flight load", self._name)
                await asyncio.wait([task])
                continue
            logger.debug("[%s] joining in-flight load", self._name)
            break

        # Shielded so one cancelled waiter does not cancel the load for the rest.
        return await asyncio.shield(task)

    def _settle(self, task: asyncio.Task[T]) -> None:
        if self.in_flight is task:
            self.in_flight = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("[%s] load failed: %s", self._name, exc)
            return
        self.value = task.result()
        self.expires_at = self._clock() + self._ttl

    def invalidate(self) -> None:
        self.value = None
        self.expires_at = 0.0
