"""
LudoLoop Backend — Request ID Middleware
==========================================

What:  Tags every request with a short correlation ID and echoes it back in
       the X-Request-ID response header.
Why:   Access log lines, security event log lines and error responses of one
       request must be joinable; support can ask a player for the ID shown on
       an error page.
How:   Reuse a client-supplied X-Request-ID, otherwise generate 8 hex chars of
       a UUID4. Stored in a ContextVar (loggers, exception handlers) and on
       request.state (route handlers).
When:  Outermost custom middleware, so every later stage sees the ID.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one event loop each see their own ID.
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"
MAX_CLIENT_ID_LENGTH = 64


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER, "").strip()
        # Oversized client IDs would bloat every log line of the request.
        if not rid or len(rid) > MAX_CLIENT_ID_LENGTH:
            rid = new_request_id()

        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
