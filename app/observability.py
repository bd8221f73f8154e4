from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp


def _json_logger(name: str) -> logging.Logger:
    log = logging.getLogger(name)
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(handler)
    log.setLevel(logging.INFO)
    log.propagate = False
    return log


logger = _json_logger("app.request")
order_logger = _json_logger("app.orders")


def log_order_event(event: str, order_id: str | None, level: int = logging.INFO, **fields) -> None:
    """One JSON line per order milestone (finalized, booked, pending...)."""
    entry = {
        "event": event,
        "order_id": order_id,
        "ts": datetime.now(timezone.utc).isoformat(),
        **fields,
    }
    order_logger.log(level, json.dumps(entry, ensure_ascii=True, default=str))


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON line per request, tagged with the order id when the route has one.

    Paths in ``quiet_paths`` (health checks) are served without a log line.
    """

    def __init__(self, app: ASGIApp, quiet_paths: tuple[str, ...] = ("/health",)) -> None:
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(_dumps(_request_entry(request, request_id, start, status=500)))
            raise

        response.headers["X-Request-Id"] = request_id
        if request.url.path in self.quiet_paths:
            return response

        entry = _request_entry(request, request_id, start, status=response.status_code)
        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(level, _dumps(entry))
        return response


def _dumps(entry: dict) -> str:
    return json.dumps({k: v for k, v in entry.items() if v is not None}, ensure_ascii=True)


def _request_entry(request: Request, request_id: str, start: float, status: int) -> dict:
    forwarded = request.headers.get("x-forwarded-for")
    client_ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    # filled in by the router once the request has been matched
    path_params = request.scope.get("path_params") or {}
    return {
        "event": "http_request",
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "order_id": path_params.get("order_id"),
        "status": status,
        "duration_ms": int((time.perf_counter() - start) * 1000),
        "client_ip": client_ip,
    }
