from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.cuadraturas.core.logging import log_json
from app.cuadraturas.db.session import get_query_time_ms, start_query_timer, stop_query_timer

logger = logging.getLogger("cuadraturas.request")


def request_log_payload(
    request: Request,
    response: Response | None,
    latency_ms: float,
    db_time_ms: float | None,
) -> dict:
    scope_route = request.scope.get("route")
    route = getattr(scope_route, "path", None) or request.url.path
    return {
        "event": "http_request",
        "trace_id": getattr(request.state, "trace_id", ""),
        "user_id": getattr(request.state, "user_id", None),
        "route": route,
        "method": request.method,
        "status_code": getattr(response, "status_code", 500),
        "latency_ms": round(latency_ms, 2),
        "db_time_ms": round(db_time_ms, 2) if db_time_ms is not None else None,
        "error_code": getattr(request.state, "error_code", None),
        "error_class": getattr(request.state, "error_class", None),
    }


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        token = start_query_timer()
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            db_time_ms = get_query_time_ms()
            stop_query_timer(token)
            log_json(
                logger,
                request_log_payload(request, response, (time.perf_counter() - started) * 1000, db_time_ms),
            )
