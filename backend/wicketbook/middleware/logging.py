"""Per-request access log for the ledger API, one JSON object per line."""

import hashlib
import json
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("wicketbook.http")

# Probe endpoints are scraped constantly; keep them out of INFO.
_QUIET_PATHS = {"/health", "/metrics"}
_MARKET_PATH = re.compile(r"^/api/markets/([0-9a-f]{24})")


def _hash_ip(request: Request) -> str | None:
    if not request.client or not request.client.host:
        return None
    return hashlib.sha256(request.client.host.encode()).hexdigest()[:12]


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency; tag market routes with their id.

    The request id is exposed as ``request.state.request_id`` and echoed in
    the ``X-Request-ID`` response header so audit entries and client
    reports can be matched to a log line.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        started = time.monotonic()

        response: Response = await call_next(request)

        path = request.url.path
        entry = {
            "request_id": request_id,
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "duration_ms": round((time.monotonic() - started) * 1000, 2),
            "client_ip_hash": _hash_ip(request),
        }
        market = _MARKET_PATH.match(path)
        if market:
            entry["market_id"] = market.group(1)

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        elif path in _QUIET_PATHS:
            level = logging.DEBUG
        else:
            level = logging.INFO
        logger.log(level, json.dumps(entry))

        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    # Scheduler logs every job run at INFO.
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
