"""
backend/wicketbook/main.py

Purpose:
    FastAPI application bootstrap: middleware and router wiring, exception
    mapping, scheduler lifecycle, realtime manager and seed admin.

Dependencies:
    - wicketbook.database
    - wicketbook.services.websocket_manager
    - wicketbook.workers.ledger_reconciler
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
)

import wicketbook.database as _db
from wicketbook.config import settings
from wicketbook.database import close_db, connect_db
from wicketbook.errors import LedgerError
from wicketbook.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("wicketbook")
scheduler = AsyncIOScheduler()


def _register_jobs() -> int:
    from wicketbook.workers.ledger_reconciler import reconcile_ledger

    added = 0
    if settings.LEDGER_RECONCILE_ENABLED and not scheduler.get_job("ledger_reconciler"):
        scheduler.add_job(
            reconcile_ledger,
            "interval",
            id="ledger_reconciler",
            hours=settings.LEDGER_RECONCILE_HOURS,
            replace_existing=True,
        )
        added += 1
    return added


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    await connect_db()
    from wicketbook.seed import seed_admin_user
    from wicketbook.services.websocket_manager import websocket_manager

    await seed_admin_user()

    added = _register_jobs()
    scheduler.start()
    logger.info("Background scheduler started (%d job(s))", added)
    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.start()
        logger.info("WebSocket realtime manager enabled")
    else:
        logger.info("WebSocket realtime manager disabled via config")

    yield

    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.stop()
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await close_db()


app = FastAPI(
    title="Wicketbook",
    description="Cricket prediction-market ledger with a virtual coin wallet",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from wicketbook.routers.admin import router as admin_router
from wicketbook.routers.leaderboard import router as leaderboard_router
from wicketbook.routers.markets import router as markets_router
from wicketbook.routers.wagers import router as wagers_router
from wicketbook.routers.wallet import router as wallet_router
from wicketbook.routers.ws import router as ws_router

app.include_router(markets_router)
app.include_router(wagers_router)
app.include_router(wallet_router)
app.include_router(admin_router)
app.include_router(leaderboard_router)
app.include_router(ws_router)


def _error(status_code: int, detail: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    """Ledger rejections carry their error type so clients can branch on it."""
    logger.info("Ledger rejection on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return _error(exc.status_code, exc.detail, code=type(exc).__name__)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return _error(400, "Invalid ID.")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Flatten pydantic errors to ``{source, field, message}`` triples."""
    errors = []
    for err in exc.errors():
        source, *path = err.get("loc", ()) or ("body",)
        errors.append({
            "source": str(source),
            "field": ".".join(str(p) for p in path) or str(source),
            "message": err.get("msg", "Invalid value."),
        })
    return _error(422, "Validation error.", errors=errors)


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return _error(409, "Duplicate entry.")


# Covers ServerSelectionTimeoutError and AutoReconnect as well.
@app.exception_handler(ConnectionFailure)
async def db_unavailable_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database unavailable (%s) on %s %s", type(exc).__name__, request.method, request.url.path)
    return _error(503, "Service temporarily unavailable.")


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    # Aborted transactions land here too; nothing was committed.
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return _error(500, "An internal error occurred.")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An internal error occurred.")


@app.get("/health")
async def health():
    """Health check -- verifies the DB connection and realtime stream."""
    from wicketbook.services.websocket_manager import websocket_manager

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "websocket": websocket_manager.stats(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
