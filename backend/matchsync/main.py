"""
backend/matchsync/main.py

Purpose:
    FastAPI application bootstrap: logging, router wiring, error mapping,
    optional scheduled sync and MongoDB lifecycle.

Dependencies:
    - matchsync.database
    - matchsync.workers.match_sync
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

import matchsync.database as _db
from matchsync.config import settings
from matchsync.database import close_db, connect_db
from matchsync.errors import AuthorizationError, ConfigurationError, UpstreamFetchError
from matchsync.middleware.logging import StructuredLoggingMiddleware, setup_logging
from matchsync.utils import ensure_utc, utcnow

logger = logging.getLogger("matchsync")
scheduler = AsyncIOScheduler()


def _uses_mongo() -> bool:
    return settings.DISCOVERY_STORE_BACKEND.strip().lower() == "mongo"


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if _uses_mongo():
        await connect_db()

    if settings.SYNC_SCHEDULE_ENABLED:
        from matchsync.workers.match_sync import run_match_sync

        scheduler.add_job(
            run_match_sync,
            "interval",
            id="match_sync",
            minutes=settings.SYNC_INTERVAL_MINUTES,
            replace_existing=True,
            max_instances=1,
        )
        scheduler.start()
        logger.info("Scheduled match sync every %d minutes", settings.SYNC_INTERVAL_MINUTES)
    else:
        logger.info("Scheduled match sync disabled via config")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    from matchsync.providers.frontspace import frontspace_store
    from matchsync.providers.smc import smc_client

    await smc_client.aclose()
    await frontspace_store.aclose()
    if _uses_mongo():
        await close_db()


app = FastAPI(
    title="matchsync",
    description="Sports-data discovery, match synchronization and live cache invalidation",
    version="0.1.0",
    lifespan=lifespan,
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from matchsync.routers.audit import router as audit_router
from matchsync.routers.discovery import router as discovery_router
from matchsync.routers.live import router as live_router
from matchsync.routers.revalidate import router as revalidate_router
from matchsync.routers.sync import router as sync_router

app.include_router(discovery_router)
app.include_router(sync_router)
app.include_router(audit_router)
app.include_router(revalidate_router)
app.include_router(live_router)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    logger.warning("Unauthorized request: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Configuration error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=503, content={"success": False, "error": str(exc)})


@app.exception_handler(UpstreamFetchError)
async def upstream_error_handler(request: Request, exc: UpstreamFetchError):
    logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"success": False, "error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("ValueError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc) or "Invalid input."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check: discovery snapshot age, provider circuit state and (mongo backend) DB ping."""
    from matchsync.providers.smc import smc_client
    from matchsync.services.discovery_service import discovery_service

    snapshot = await discovery_service.stored()
    age_hours = None
    if snapshot is not None and snapshot.last_updated is not None:
        age_hours = round((utcnow() - ensure_utc(snapshot.last_updated)).total_seconds() / 3600, 1)

    db_ok = None
    if _uses_mongo():
        try:
            result = await _db.db.command("ping")
            db_ok = result.get("ok") == 1.0
        except Exception:
            db_ok = False

    healthy = snapshot is not None and not snapshot.is_empty() and db_ok is not False
    return {
        "status": "healthy" if healthy else "degraded",
        "db": None if db_ok is None else ("connected" if db_ok else "disconnected"),
        "discovery": {
            "competitions": 0 if snapshot is None else len(snapshot.competitions),
            "age_hours": age_hours,
        },
        "smc_provider": {"circuit_open": smc_client.circuit_open},
    }
