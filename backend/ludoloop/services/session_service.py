"""
LudoLoop Backend — Session Refresher
======================================

What:  Validates (and when needed refreshes) the caller's session against the
       auth provider, and computes the cookie changes for the response.
Why:   Access tokens are short-lived. Without a per-request refresh, users get
       logged out at random whenever a page renders after their token expired.
How:   refresh_session() is a transformation from request cookies to a
       SessionRefreshResult: (user, access token, outcome, cookies to set,
       cookies to delete). It never touches a response object; the
       SessionRefreshMiddleware applies the result to the HTTP response.

Outcomes:
    ANONYMOUS    no session cookie present
    VALID        access token accepted as-is
    REFRESHED    access token was expired; new session cookies written
    INVALIDATED  refresh token rejected; all auth cookies deleted
    ERROR        any other provider/transport failure; logged, no cookie
                 changes, request continues unauthenticated
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ludoloop.exceptions import AuthProviderError, AuthRefreshFailure
from ludoloop.services.auth_client import AuthClient
from ludoloop.services.session_cookies import (
    SessionTokenPair,
    auth_cookie_names,
    chunk_value,
    encode_session_value,
    read_session,
    session_cookie_names,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CookieWrite:
    """A cookie the response must set."""

    name: str
    value: str


@dataclass
class SessionRefreshResult:
    outcome: str
    user: Optional[Dict[str, Any]] = None
    access_token: Optional[str] = None
    cookies_to_set: List[CookieWrite] = field(default_factory=list)
    cookies_to_delete: List[str] = field(default_factory=list)

    @property
    def authenticated(self) -> bool:
        return self.user is not None


class SessionOutcome:
    ANONYMOUS = "anonymous"
    VALID = "valid"
    REFRESHED = "refreshed"
    INVALIDATED = "invalidated"
    ERROR = "error"


def build_session_cookies(
    pair: SessionTokenPair,
    cookie_name: str,
    existing_cookies: Mapping[str, str],
) -> SessionRefreshResult:
    """
    Compute the writes for a freshly issued session.

    Chunks left over from a previous, longer session value (or the unchunked
    cookie when the new value is chunked) are deleted so the browser never
    holds a mix of old and new parts.
    """
    writes = chunk_value(cookie_name, encode_session_value(pair))
    stale = [name for name in session_cookie_names(existing_cookies, cookie_name) if name not in writes]
    return SessionRefreshResult(
        outcome=SessionOutcome.REFRESHED,
        user=pair.user,
        access_token=pair.access_token,
        cookies_to_set=[CookieWrite(name, value) for name, value in writes.items()],
        cookies_to_delete=stale,
    )


async def refresh_session(
    cookies: Mapping[str, str],
    auth: AuthClient,
    cookie_name: str,
    cookie_prefix: str = "sb-",
    fixed_cookie_names: Optional[List[str]] = None,
    expiry_margin_seconds: int = 10,
    now: Optional[float] = None,
) -> SessionRefreshResult:
    """
    Resolve the session carried by `cookies`.

    Flow:
        1. No readable session cookie → ANONYMOUS
        2. Access token still valid → provider "get user" → VALID
        3. Access token expired → provider refresh → REFRESHED (new cookies)
        4. Refresh token rejected → INVALIDATED (all auth cookies deleted)
        5. Anything else the provider or network throws → ERROR (logged)

    Args:
        cookies: Request cookies (name → value)
        auth: Auth provider client
        cookie_name: Name of the combined session cookie
        cookie_prefix: Prefix shared by all auth cookies ("sb-")
        fixed_cookie_names: Legacy cookie names always purged on invalidation
        expiry_margin_seconds: Refresh tokens this close to expiry early
        now: UNIX time override for tests

    Never raises for provider failures.
    """
    current = time.time() if now is None else now
    pair = read_session(cookies, cookie_name, now=current)
    if pair is None:
        return SessionRefreshResult(outcome=SessionOutcome.ANONYMOUS)

    try:
        if not pair.is_expired(expiry_margin_seconds, now=current):
            user = await auth.get_user(pair.access_token)
            return SessionRefreshResult(
                outcome=SessionOutcome.VALID,
                user=user,
                access_token=pair.access_token,
            )

        logger.debug("Access token expired at %s; refreshing session", pair.expires_at)
        session = await auth.refresh_session(pair.refresh_token)
        refreshed = SessionTokenPair.from_session(session, now=current)
        result = build_session_cookies(refreshed, cookie_name, cookies)
        if result.user is None:
            # The new tokens are already issued (the old refresh token is spent),
            # so the cookies are written even if the user lookup fails
            try:
                result.user = await auth.get_user(refreshed.access_token)
            except AuthProviderError as exc:
                logger.error("Session refreshed but user lookup failed: %s", exc.message)
        logger.info("Session refreshed; new access token expires at %s", refreshed.expires_at)
        return result

    except AuthRefreshFailure as exc:
        names = auth_cookie_names(cookies, cookie_prefix, fixed_cookie_names or [])
        logger.info(
            "Refresh token rejected (%s); clearing %d auth cookies",
            exc.code or exc.message,
            len(names),
        )
        return SessionRefreshResult(outcome=SessionOutcome.INVALIDATED, cookies_to_delete=names)

    except AuthProviderError as exc:
        logger.error(
            "Error getting user from auth provider: %s | Context: %s",
            exc.message,
            exc.context,
        )
        return SessionRefreshResult(outcome=SessionOutcome.ERROR)

    except (KeyError, TypeError, ValueError) as exc:
        # Provider answered 2xx with a payload we cannot use
        logger.error("Malformed session payload from auth provider: %s", exc)
        return SessionRefreshResult(outcome=SessionOutcome.ERROR)
