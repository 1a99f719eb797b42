"""
backend/matchsync/providers/http_client.py

Purpose:
    Shared outbound HTTP layer for provider and CMS adapters: bounded retries
    with exponential backoff (honouring Retry-After), and a per-upstream
    circuit breaker that refuses calls while the upstream keeps failing.

Dependencies:
    - httpx
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("matchsync.http_client")

_TRANSIENT_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)


def safe_url(url: str | httpx.URL) -> str:
    """URL without its query string, for log lines."""
    parsed = urlparse(str(url))
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def retry_after_seconds(response: httpx.Response) -> float | None:
    for header in ("retry-after", "x-ratelimit-retry-after"):
        raw = response.headers.get(header)
        if raw is None:
            continue
        try:
            return max(float(raw), 0.0)
        except ValueError:
            continue
    return None


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    retry_statuses: frozenset[int] = field(default_factory=lambda: frozenset({429, 500, 502, 503, 504}))

    @property
    def attempts(self) -> int:
        return self.max_retries + 1

    def delay(self, attempt: int, response: httpx.Response | None = None) -> float:
        hinted = retry_after_seconds(response) if response is not None else None
        wait = hinted if hinted is not None else self.base_delay * (2 ** attempt)
        return min(wait, self.max_delay)


class CircuitBreaker:
    """Opens after `failure_threshold` consecutive failed calls; half-opens after `recovery_timeout`."""

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 120.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.failures = 0
        self.opened_at: float | None = None

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def allows_request(self) -> bool:
        if self.opened_at is None:
            return True
        return self._clock() - self.opened_at >= self.recovery_timeout

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit closed again after a successful call")
        self.failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.failures += 1
        if self.failures >= self.failure_threshold:
            if self.opened_at is None:
                logger.warning("Circuit breaker OPEN after %d failures", self.failures)
            self.opened_at = self._clock()


class CircuitOpenError(httpx.TransportError):
    """Raised instead of issuing a request while the circuit is open."""


class ResilientClient:
    """httpx.AsyncClient wrapper. Returns the last response once retries run out; raises only for transport errors."""

    def __init__(
        self,
        name: str,
        timeout: float = 15.0,
        max_retries: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 30.0,
        *,
        breaker: CircuitBreaker | None = None,
    ):
        self._name = name
        self._client = httpx.AsyncClient(timeout=timeout)
        self.policy = RetryPolicy(max_retries=max_retries, base_delay=base_delay, max_delay=max_delay)
        self.circuit = breaker or CircuitBreaker()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.circuit.allows_request():
            raise CircuitOpenError(f"[{self._name}] circuit open, refusing {method} {safe_url(url)}")

        last_resp: httpx.Response | None = None
        last_exc: Exception | None = None
        for attempt in range(self.policy.attempts):
            try:
                resp = await self._client.request(method, url, **kwargs)
            except _TRANSIENT_ERRORS as exc:
                last_exc, last_resp = exc, None
                logger.warning(
                    "[%s] Network error on %s %s (attempt %d/%d): %s",
                    self._name, method, safe_url(url), attempt + 1, self.policy.attempts, exc,
                )
            else:
                if resp.status_code not in self.policy.retry_statuses:
                    self.circuit.record_success()
                    return resp
                last_resp = resp
                logger.warning(
                    "[%s] %s %d on %s %s (attempt %d/%d)",
                    self._name,
                    "Rate limited" if resp.status_code == 429 else "Server error",
                    resp.status_code, method, safe_url(url), attempt + 1, self.policy.attempts,
                )
            if attempt < self.policy.max_retries:
                await asyncio.sleep(self.policy.delay(attempt, last_resp))

        self.circuit.record_failure()
        if last_resp is not None:
            logger.error(
                "[%s] Giving up on %s %s after %d attempts (last status %d)",
                self._name, method, safe_url(url), self.policy.attempts, last_resp.status_code,
            )
            return last_resp
        logger.error(
            "[%s] Giving up on %s %s after %d attempts: %s",
            self._name, method, safe_url(url), self.policy.attempts, last_exc,
        )
        raise last_exc  # type: ignore[misc]

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
