"""
LudoLoop Backend — Session Refresher Unit Tests
=================================================

What:  Tests for refresh_session(): cookies in, SessionRefreshResult out.
How:   The auth provider is a MagicMock with AsyncMock methods, so every
       outcome can be forced without HTTP.

What we test:
    ✅ No cookie → ANONYMOUS, provider untouched
    ✅ Valid token → VALID via get_user, no cookie writes
    ✅ Expired token → REFRESHED with new cookies (chunked when large)
    ✅ Invalid refresh token → INVALIDATED, every auth cookie deleted
    ✅ Any other provider failure → ERROR, logged, no cookie changes
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ludoloop.exceptions import AuthProviderError, AuthRefreshFailure
from ludoloop.services.session_cookies import read_session
from ludoloop.services.session_service import SessionOutcome, refresh_session

from conftest import SESSION_COOKIE, TEST_USER, session_cookie_value, session_payload

NOW = 1_800_000_000.0
LEGACY = ["sb-access-token", "sb-refresh-token"]


def _auth(user=None, refreshed=None):
    auth = MagicMock()
    auth.get_user = AsyncMock(return_value=user or dict(TEST_USER))
    auth.refresh_session = AsyncMock(return_value=refreshed)
    return auth


async def _refresh(cookies, auth):
    return await refresh_session(
        cookies,
        auth,
        cookie_name=SESSION_COOKIE,
        cookie_prefix="sb-",
        fixed_cookie_names=LEGACY,
        expiry_margin_seconds=10,
        now=NOW,
    )


class TestValidAndAnonymous:

    @pytest.mark.asyncio
    async def test_no_cookie_is_anonymous(self):
        auth = _auth()
        result = await _refresh({"theme": "dark"}, auth)

        assert result.outcome == SessionOutcome.ANONYMOUS
        assert result.authenticated is False
        auth.get_user.assert_not_awaited()
        auth.refresh_session.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_valid_token_is_validated_with_provider(self):
        auth = _auth()
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) + 3600)}

        result = await _refresh(cookies, auth)

        assert result.outcome == SessionOutcome.VALID
        assert result.user["id"] == TEST_USER["id"]
        assert result.access_token == "valid-access"
        assert result.cookies_to_set == []
        assert result.cookies_to_delete == []
        auth.get_user.assert_awaited_once_with("valid-access")
        auth.refresh_session.assert_not_awaited()


class TestRefresh:

    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self):
        new_session = session_payload(
            access_token="new-access",
            refresh_token="new-refresh",
            expires_at=int(NOW) + 3600,
            user=dict(TEST_USER),
        )
        auth = _auth(refreshed=new_session)
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) - 5)}

        result = await _refresh(cookies, auth)

        assert result.outcome == SessionOutcome.REFRESHED
        assert result.access_token == "new-access"
        assert result.user["email"] == TEST_USER["email"]
        auth.refresh_session.assert_awaited_once_with("valid-refresh")
        auth.get_user.assert_not_awaited()

        written = {c.name: c.value for c in result.cookies_to_set}
        assert list(written) == [SESSION_COOKIE]
        pair = read_session(written, SESSION_COOKIE)
        assert (pair.access_token, pair.refresh_token) == ("new-access", "new-refresh")

    @pytest.mark.asyncio
    async def test_token_inside_margin_is_refreshed_early(self):
        auth = _auth(refreshed=session_payload(access_token="new-access", user=dict(TEST_USER)))
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) + 5)}

        result = await _refresh(cookies, auth)
        assert result.outcome == SessionOutcome.REFRESHED

    @pytest.mark.asyncio
    async def test_large_session_is_chunked_and_stale_cookie_removed(self):
        big_user = dict(TEST_USER, user_metadata={"bio": "y" * 5000})
        auth = _auth(refreshed=session_payload(access_token="new-access", user=big_user))
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) - 5)}

        result = await _refresh(cookies, auth)

        names = [c.name for c in result.cookies_to_set]
        assert names[0] == f"{SESSION_COOKIE}.0"
        assert len(names) >= 2
        assert result.cookies_to_delete == [SESSION_COOKIE]

    @pytest.mark.asyncio
    async def test_user_lookup_failure_after_refresh_keeps_new_cookies(self):
        # Provider answered without an embedded user
        auth = _auth(refreshed=session_payload(access_token="new-access"))
        auth.get_user.side_effect = AuthProviderError("upstream timeout")
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) - 5)}

        result = await _refresh(cookies, auth)

        assert result.outcome == SessionOutcome.REFRESHED
        assert result.user is None
        assert [c.name for c in result.cookies_to_set] == [SESSION_COOKIE]


class TestFailures:

    @pytest.mark.asyncio
    async def test_invalid_refresh_token_purges_auth_cookies(self):
        auth = _auth()
        auth.refresh_session.side_effect = AuthRefreshFailure(
            "Invalid Refresh Token: Refresh Token Not Found",
            status_code=400,
            code="refresh_token_not_found",
        )
        cookies = {
            SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) - 5),
            "sb-other-auth-token-code-verifier": "v",
            "theme": "dark",
        }

        result = await _refresh(cookies, auth)

        assert result.outcome == SessionOutcome.INVALIDATED
        assert result.user is None
        assert result.cookies_to_set == []
        assert set(result.cookies_to_delete) == {
            "sb-access-token",
            "sb-refresh-token",
            SESSION_COOKIE,
            "sb-other-auth-token-code-verifier",
        }

    @pytest.mark.asyncio
    async def test_other_provider_error_is_logged_not_raised(self, caplog):
        auth = _auth()
        auth.get_user.side_effect = AuthProviderError("Auth provider unreachable: timed out")
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) + 3600)}

        result = await _refresh(cookies, auth)

        assert result.outcome == SessionOutcome.ERROR
        assert result.user is None
        assert result.cookies_to_set == [] and result.cookies_to_delete == []
        assert "Error getting user" in caplog.text

    @pytest.mark.asyncio
    async def test_malformed_refresh_payload_is_an_error(self):
        auth = _auth(refreshed={"access_token": "only-half"})
        cookies = {SESSION_COOKIE: session_cookie_value(expires_at=int(NOW) - 5)}

        result = await _refresh(cookies, auth)
        assert result.outcome == SessionOutcome.ERROR
        assert result.cookies_to_set == []
