"""
LudoLoop Backend — Session & Account Routes
=============================================

What:  GET /api/session, POST /api/auth/sign-out, DELETE /api/account.
How:   The session itself was already resolved (and refreshed) by
       SessionRefreshMiddleware; these handlers read it from request.state.
       Sign-out and account deletion delete every auth cookie on the response
       so the browser is signed out even if the provider call failed.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response

from ludoloop.config import Settings
from ludoloop.dependencies import (
    get_access_token,
    get_app_config,
    get_auth_client,
    get_backend_client,
    get_current_user,
    get_optional_user,
    get_rate_limit_guard,
)
from ludoloop.middleware.session import clear_auth_cookies
from ludoloop.schemas.common import ErrorResponse
from ludoloop.schemas.session import ActionResponse, SessionResponse, SessionUser
from ludoloop.services.account_service import account_service
from ludoloop.services.auth_client import AuthClient
from ludoloop.services.backend_client import BackendClient
from ludoloop.services.rate_limit_guard import RateLimitGuard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Session"])


@router.get(
    "/session",
    response_model=SessionResponse,
    summary="Current session",
    description="Returns the signed-in user, or authenticated=false for anonymous callers.",
)
async def get_session(
    response: Response,
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> SessionResponse:
    # Per-user data: never cache, and never let a shared cache keep it
    response.headers["Cache-Control"] = "private, no-store"
    if not user:
        return SessionResponse(authenticated=False)
    return SessionResponse(authenticated=True, user=SessionUser.model_validate(user))


@router.post(
    "/auth/sign-out",
    response_model=ActionResponse,
    summary="Sign out",
    description=(
        "Revokes the session at the auth provider (best effort) and deletes every "
        "auth cookie. Succeeds for anonymous callers too."
    ),
)
async def sign_out(
    request: Request,
    response: Response,
    access_token: Optional[str] = Depends(get_access_token),
    config: Settings = Depends(get_app_config),
) -> ActionResponse:
    auth: Optional[AuthClient] = getattr(request.app.state, "auth_client", None)
    revoked = False
    if auth is not None and access_token:
        revoked = await account_service.sign_out(auth, access_token)

    cleared = clear_auth_cookies(request, response, config)
    logger.info("Signed out (provider revoked=%s, %d cookies cleared)", revoked, len(cleared))
    return ActionResponse(success=True, message="Signed out")


@router.delete(
    "/account",
    response_model=ActionResponse,
    responses={
        401: {"description": "Not signed in", "model": ErrorResponse},
        429: {"description": "Data service cooling down", "model": ErrorResponse},
        500: {"description": "Deletion failed", "model": ErrorResponse},
    },
    summary="Delete the current account",
    description=(
        "Deletes the user's profile row (related data cascades), the auth account, "
        "then signs out. Irreversible."
    ),
)
async def delete_account(
    request: Request,
    response: Response,
    user: Dict[str, Any] = Depends(get_current_user),
    access_token: Optional[str] = Depends(get_access_token),
    auth: AuthClient = Depends(get_auth_client),
    backend: BackendClient = Depends(get_backend_client),
    guard: RateLimitGuard = Depends(get_rate_limit_guard),
    config: Settings = Depends(get_app_config),
) -> ActionResponse:
    await account_service.delete_account(
        auth=auth,
        backend=backend,
        guard=guard,
        user_id=user["id"],
        access_token=access_token or "",
    )
    clear_auth_cookies(request, response, config)
    logger.info("Account %s deleted", user["id"])
    return ActionResponse(success=True, message="Account deleted")
