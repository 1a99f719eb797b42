"""
backend/matchsync/middleware/logging.py

Purpose:
    Access logging for the HTTP app and the shared logging bootstrap used by
    both the app and the live-event listener process.
"""

import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from matchsync.config import settings

logger = logging.getLogger("matchsync.access")

# Polled by uptime checks; logged at DEBUG unless they fail.
_QUIET_PATHS = {"/health", "/api/revalidate-match"}


def _client_hash(request: Request) -> str | None:
    if not request.client:
        return None
    return hashlib.sha256((request.client.host or "").encode()).hexdigest()[:12]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON access line per request. Query strings are left out (they may carry secrets)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        start = time.perf_counter()

        response: Response = await call_next(request)

        status = response.status_code
        if status >= 400:
            level = logging.WARNING
        elif request.method == "GET" and request.url.path in _QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(level, json.dumps({
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "client_ip_hash": _client_hash(request),
        }))

        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(level: str | int | None = None) -> None:
    logging.basicConfig(
        level=level or settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # httpx logs full request URLs at INFO, including query-string secrets.
    for noisy in ("httpx", "azure", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
