"""
LudoLoop Backend — Account Service
====================================

What:  Sign-out and account deletion against the hosted auth provider and
       data API.
How:   Deletion order matters:
           1. delete the profile row in `users` (related rows cascade in the DB)
           2. admin-delete the auth user (service-role key)
           3. revoke the session (best effort: the user no longer exists)
       A failure in step 1 or 2 aborts with the original error so nothing
       half-deleted is reported as success.
"""

import logging

from ludoloop.exceptions import AuthProviderError
from ludoloop.services.auth_client import AuthClient
from ludoloop.services.backend_client import BackendClient
from ludoloop.services.rate_limit_guard import RateLimitGuard

logger = logging.getLogger(__name__)

USERS_TABLE = "users"


class AccountService:

    async def sign_out(self, auth: AuthClient, access_token: str) -> bool:
        """
        Revoke the session at the provider.

        Returns False instead of raising when the provider refuses: the caller
        deletes the cookies either way, which is what signs the browser out.
        """
        try:
            await auth.sign_out(access_token)
            return True
        except AuthProviderError as exc:
            logger.warning("Provider sign-out failed (cookies are cleared anyway): %s", exc.message)
            return False

    async def delete_account(
        self,
        auth: AuthClient,
        backend: BackendClient,
        guard: RateLimitGuard,
        user_id: str,
        access_token: str,
    ) -> None:
        """Delete the user's data and auth account, then end the session."""
        await guard.run_guarded(
            lambda: backend.delete(USERS_TABLE, filters={"id": user_id}, access_token=access_token)
        )
        logger.info("Deleted profile row for user %s", user_id)

        await auth.admin_delete_user(user_id)
        logger.info("Deleted auth account for user %s", user_id)

        await self.sign_out(auth, access_token)


account_service = AccountService()
