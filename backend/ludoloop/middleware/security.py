"""
LudoLoop Backend — Security Event Middleware
==============================================

What:  Runs the security event detector on every matched request and logs
       what it finds.
Why:   Abuse patterns (scanners, injection probes, credential submissions)
       must be visible in the logs without ever blocking a legitimate request.
How:   Snapshot the request → detect_security_events() → log each event on
       the "ludoloop.security" logger → always continue to the next stage.
       The events are also left on request.state.security_events for handlers.
When:  Before SessionRefreshMiddleware.

Failure policy:
    A detector failure is logged and the request continues; this stage never
    produces a response of its own.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ludoloop.middleware.matcher import should_process
from ludoloop.middleware.request_id import request_id_var
from ludoloop.services.security_detector import (
    SUSPICIOUS_ACTIVITY,
    RequestFacts,
    detect_security_events,
)

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("ludoloop.security")


class SecurityEventMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not should_process(request.url.path):
            return await call_next(request)

        try:
            events = detect_security_events(RequestFacts.from_request(request))
        except Exception:
            logger.exception("[Security] Error in security middleware")
            events = []

        request.state.security_events = events
        rid = request_id_var.get("")
        for event in events:
            level = logging.WARNING if event.event_type == SUSPICIOUS_ACTIVITY else logging.INFO
            security_logger.log(
                level,
                "[Security] Detected security event: %s (%s) [%s] %s %s from %s",
                event.event_type,
                event.reason,
                rid,
                event.data.get("method"),
                event.data.get("path"),
                event.data.get("ip_address"),
                extra={
                    "request_id": rid,
                    "event_type": event.event_type,
                    "reason": event.reason,
                    "client_ip": event.data.get("ip_address"),
                },
            )

        return await call_next(request)
