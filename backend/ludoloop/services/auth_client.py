"""
LudoLoop Backend — Auth Provider Client
=========================================

What:  Async client for the hosted auth provider (GoTrue REST API).
Why:   The session refresher, sign-out and account deletion all need the
       provider; one client keeps URL/key handling and error translation in
       one place.
How:   httpx.AsyncClient with the project's public key on every call. Error
       bodies are translated into AuthProviderError, or AuthRefreshFailure
       when the provider says the refresh token is unusable.
Who:   Created once in create_app() (app.state.auth_client); closed on shutdown.

Endpoints used:
    GET    /auth/v1/user                               → current user
    POST   /auth/v1/token?grant_type=refresh_token     → refresh session
    POST   /auth/v1/logout?scope=local|global|others   → sign out
    DELETE /auth/v1/admin/users/{id}                   → admin delete (service key)
"""

import logging
from typing import Any, Dict, Optional

import httpx

from ludoloop.exceptions import AuthProviderError, AuthRefreshFailure, ConfigurationError

logger = logging.getLogger(__name__)

# Substrings (in message or error code) that mean the refresh token is dead
INVALID_REFRESH_SIGNATURES = ("refresh_token_not_found", "Invalid Refresh Token")


def is_invalid_refresh_message(message: str) -> bool:
    return any(signature in message for signature in INVALID_REFRESH_SIGNATURES)


class AuthClient:
    """
    Thin wrapper over the provider's REST endpoints.

    Args:
        base_url: Project URL (https://<ref>.supabase.co)
        anon_key: Public API key
        service_role_key: Admin key; only needed for admin_delete_user()
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        service_role_key: str = "",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/auth/v1",
            headers={"apikey": anon_key},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Session operations ────────────────────────────────────────────────

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """Return the user owning `access_token`. Raises AuthProviderError if rejected."""
        response = await self._request(
            "GET", "/user", headers={"Authorization": f"Bearer {access_token}"}
        )
        return response.json()

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        """
        Exchange a refresh token for a new session.

        Returns the provider session payload (access_token, refresh_token,
        expires_in, expires_at, user).

        Raises:
            AuthRefreshFailure: refresh token unknown, revoked or already used
            AuthProviderError:  any other provider or transport failure
        """
        response = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return response.json()

    async def sign_out(self, access_token: str, scope: str = "local") -> None:
        """Revoke the session behind `access_token` (scope: local, global, others)."""
        await self._request(
            "POST",
            "/logout",
            params={"scope": scope},
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def admin_delete_user(self, user_id: str) -> None:
        """Delete a user account. Requires the service-role key."""
        if not self.service_role_key:
            raise ConfigurationError("SUPABASE_SERVICE_ROLE_KEY is required to delete users")
        await self._request(
            "DELETE",
            f"/admin/users/{user_id}",
            headers={
                "apikey": self.service_role_key,
                "Authorization": f"Bearer {self.service_role_key}",
            },
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Auth provider unreachable (%s %s): %s", method, path, exc)
            raise AuthProviderError(
                message=f"Auth provider unreachable: {exc}",
                context={"path": path, "error_type": type(exc).__name__},
            ) from exc

        if response.is_success:
            return response
        raise self._translate_error(response, path)

    @staticmethod
    def _translate_error(response: httpx.Response, path: str) -> AuthProviderError:
        """
        Map a provider error body to the exception hierarchy.

        Provider error bodies come in several generations:
            {"code": 400, "error_code": "refresh_token_not_found", "msg": "..."}
            {"error": "invalid_grant", "error_description": "..."}
            {"message": "..."}
        """
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = (
            body.get("msg")
            or body.get("message")
            or body.get("error_description")
            or response.text
            or response.reason_phrase
        )
        code = body.get("error_code") or body.get("error")
        if code is None and isinstance(body.get("code"), str):
            code = body["code"]

        exc_class = AuthProviderError
        if is_invalid_refresh_message(str(message)) or is_invalid_refresh_message(str(code or "")):
            exc_class = AuthRefreshFailure

        return exc_class(
            message=str(message),
            status_code=response.status_code,
            code=str(code) if code else None,
            context={"path": path},
        )
