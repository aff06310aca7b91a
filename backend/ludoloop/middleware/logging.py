"""
LudoLoop Backend — Access Log Middleware
==========================================

What:  One access log line per request on the "ludoloop.access" logger.
Why:   Latency and error-rate monitoring; correlation with security events
       through the shared request ID.
How:   Time the downstream chain with perf_counter and log method, path,
       status, duration, request ID, client IP and session outcome. Level
       follows the status: 5xx ERROR, 4xx WARNING, otherwise INFO.

Privacy:
    Never logged: request bodies, cookies, Authorization headers, query
    strings (search terms may be personal).

Skipped:
    /health (probed every few seconds by orchestrators) and paths the
    middleware matcher excludes (static assets).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ludoloop.middleware.matcher import should_process
from ludoloop.middleware.request_id import request_id_var
from ludoloop.services.security_detector import RequestFacts

logger = logging.getLogger("ludoloop.access")

QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS or not should_process(path):
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        client_ip = RequestFacts.from_request(request).ip_address
        outcome = getattr(request.state, "session_outcome", None) or "-"

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s session=%s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            outcome,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "session_outcome": outcome,
            },
        )
        return response
