"""
LudoLoop Backend — Session Refresh Middleware
===============================================

What:  Validates/refreshes the caller's session before the route runs and
       writes the resulting cookie changes onto the response.
Why:   Route handlers and pages must see a fresh session, and the browser must
       receive refreshed tokens (or have dead ones purged) on the same response.
How:   refresh_session() computes a SessionRefreshResult from the request
       cookies; this middleware exposes the user on request.state and applies
       the cookie writes/deletions to whatever response is returned.

Request state set for handlers:
    request.state.user             provider user dict or None
    request.state.access_token     token to forward to the data API or None
    request.state.session_outcome  anonymous | valid | refreshed | invalidated | error
    request.state.session_cleared  set by routes that sign the user out

Degradation:
    - Provider not configured → pass-through, one warning per process
    - Provider failure → handled inside refresh_session (logged, anonymous)
    - Failure of this middleware's own logic before the route runs → HTTP 500
      with an empty body
    - Failure while writing cookies after the route ran → the route's
      response is returned unmodified
"""

import logging
from typing import List, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from ludoloop.config import Settings, settings as default_settings
from ludoloop.middleware.matcher import should_process
from ludoloop.services.session_cookies import auth_cookie_names
from ludoloop.services.session_service import SessionRefreshResult, refresh_session

logger = logging.getLogger(__name__)


def apply_session_result(
    response: Response,
    result: SessionRefreshResult,
    config: Settings,
    write_session: bool = True,
) -> None:
    """
    Write the cookie changes of `result` onto `response`.

    The Set-Cookie headers are built on a scratch response first and appended
    in one step, so a failure leaves `response` without any of them.

    write_session=False drops the session writes (the route signed the user
    out, so a refreshed session must not be re-issued after its deletions).
    """
    staged = Response()
    for name in result.cookies_to_delete:
        staged.delete_cookie(name, path="/", samesite="lax", secure=config.auth_cookie_secure)
    if write_session:
        for cookie in result.cookies_to_set:
            staged.set_cookie(
                cookie.name,
                cookie.value,
                max_age=config.auth_cookie_max_age,
                path="/",
                samesite="lax",
                secure=config.auth_cookie_secure,
                httponly=False,
            )
    response.raw_headers.extend(
        (key, value) for key, value in staged.raw_headers if key == b"set-cookie"
    )


class SessionRefreshMiddleware(BaseHTTPMiddleware):
    """
    Args:
        app: Next ASGI app in the chain
        config: Settings override (tests); defaults to the global settings
    """

    def __init__(self, app: ASGIApp, config: Optional[Settings] = None):
        super().__init__(app)
        self.config = config or default_settings
        self._warned_unconfigured = False

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request.state.user = None
        request.state.access_token = None
        request.state.session_outcome = None

        if not should_process(request.url.path):
            return await call_next(request)

        auth = getattr(request.app.state, "auth_client", None)
        if auth is None:
            if not self._warned_unconfigured:
                logger.warning(
                    "Session refresh disabled: auth provider not configured "
                    "(SUPABASE_URL set=%s, SUPABASE_ANON_KEY set=%s)",
                    bool(self.config.supabase_url),
                    bool(self.config.supabase_anon_key),
                )
                self._warned_unconfigured = True
            return await call_next(request)

        try:
            result = await refresh_session(
                request.cookies,
                auth,
                cookie_name=self.config.session_cookie_name,
                cookie_prefix=self.config.auth_cookie_prefix,
                fixed_cookie_names=self.config.legacy_auth_cookie_names_list,
                expiry_margin_seconds=self.config.session_expiry_margin_seconds,
            )
            request.state.user = result.user
            request.state.access_token = result.access_token if result.user else None
            request.state.session_outcome = result.outcome

            if result.user is None and self._requires_login(request.url.path):
                redirect = RedirectResponse(
                    url=str(request.url.replace(path=self.config.login_path)),
                    status_code=307,
                )
                apply_session_result(redirect, result, self.config)
                return redirect
        except Exception:
            logger.exception("Error in session middleware")
            return Response(status_code=500)

        response = await call_next(request)

        try:
            apply_session_result(
                response,
                result,
                self.config,
                write_session=not getattr(request.state, "session_cleared", False),
            )
        except Exception:
            logger.exception("Failed to apply session cookies; returning response unmodified")
        return response

    def _requires_login(self, path: str) -> bool:
        if any(path.startswith(prefix) for prefix in self.config.public_auth_paths_list):
            return False
        return any(path.startswith(prefix) for prefix in self.config.protected_paths_list)


def clear_auth_cookies(request: Request, response: Response, config: Settings) -> List[str]:
    """
    Delete every auth cookie the request carries (plus the legacy names) and
    mark the request so the middleware does not re-issue a refreshed session.
    """
    names = auth_cookie_names(
        request.cookies,
        config.auth_cookie_prefix,
        config.legacy_auth_cookie_names_list,
    )
    for name in names:
        response.delete_cookie(name, path="/", samesite="lax", secure=config.auth_cookie_secure)
    request.state.session_cleared = True
    return names
