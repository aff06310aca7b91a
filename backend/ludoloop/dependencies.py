"""
LudoLoop Backend — Route Dependencies
=======================================

What:  FastAPI dependencies that hand route handlers the per-app clients and
       the per-request session resolved by SessionRefreshMiddleware.
Why:   Routes stay free of app.state / request.state plumbing, and tests
       override a single dependency instead of patching modules.

Per-app objects (created in create_app(), stored on app.state):
    auth_client         AuthClient or None when the provider is not configured
    backend_client      BackendClient or None when the provider is not configured
    config              Settings the app was created with
    rate_limit_guard    RateLimitGuard (always present)
    security_events     SecurityEventService tuned by the app config
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request

from ludoloop.config import Settings, settings
from ludoloop.exceptions import AuthenticationRequiredError, ConfigurationError
from ludoloop.services.auth_client import AuthClient
from ludoloop.services.backend_client import BackendClient
from ludoloop.services.rate_limit_guard import RateLimitGuard
from ludoloop.services.security_detector import RequestFacts
from ludoloop.services.security_event_service import ClientInfo, SecurityEventService

logger = logging.getLogger(__name__)


def get_auth_client(request: Request) -> AuthClient:
    client = getattr(request.app.state, "auth_client", None)
    if client is None:
        raise ConfigurationError("The authentication service is not configured")
    return client


def get_backend_client(request: Request) -> BackendClient:
    client = getattr(request.app.state, "backend_client", None)
    if client is None:
        raise ConfigurationError("The data service is not configured")
    return client


def get_app_config(request: Request) -> Settings:
    return getattr(request.app.state, "config", settings)


def get_rate_limit_guard(request: Request) -> RateLimitGuard:
    return request.app.state.rate_limit_guard


def get_security_event_service(request: Request) -> SecurityEventService:
    return request.app.state.security_events


def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    """The user resolved by the session middleware, or None for anonymous callers."""
    return getattr(request.state, "user", None)


def get_current_user(request: Request) -> Dict[str, Any]:
    """Like get_optional_user(), but anonymous callers get a 401."""
    user = get_optional_user(request)
    if not user or not user.get("id"):
        raise AuthenticationRequiredError()
    return user


def get_access_token(request: Request) -> Optional[str]:
    """The caller's (possibly just refreshed) access token for data API calls."""
    return getattr(request.state, "access_token", None)


def get_client_info(request: Request) -> ClientInfo:
    facts = RequestFacts.from_request(request)
    return ClientInfo(ip_address=facts.ip_address, user_agent=facts.user_agent or "unknown")
