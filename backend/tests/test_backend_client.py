"""
LudoLoop Backend — Data API Client Tests
==========================================

What we test:
    ✅ Filter encoding (eq default, operators, booleans, null, in-lists)
    ✅ select/insert/delete request shapes and auth headers
    ✅ Non-2xx answers become BackendError("<status> <reason>...")
    ✅ Unfiltered update/delete is refused
"""

import json

import httpx
import pytest

from ludoloop.exceptions import BackendError
from ludoloop.services.backend_client import BackendClient, encode_filters
from ludoloop.services.rate_limit_guard import is_rate_limit_error

from conftest import SUPABASE_URL


def _client(handler):
    return BackendClient(
        SUPABASE_URL,
        "test-anon-key",
        service_role_key="test-service-key",
        transport=httpx.MockTransport(handler),
    )


class TestEncodeFilters:

    def test_encodings(self):
        params = encode_filters({
            "invitee_id": "u1",
            "title": ("ilike", "%catan%"),
            "is_public": True,
            "deleted_at": ("is", None),
            "id": ("in", ["a", "b"]),
        })
        assert params == [
            ("invitee_id", "eq.u1"),
            ("title", "ilike.%catan%"),
            ("is_public", "eq.true"),
            ("deleted_at", "is.null"),
            ("id", "in.(a,b)"),
        ]

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            encode_filters({"title": ("regex", ".*")})


class TestRequests:

    @pytest.mark.asyncio
    async def test_select(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": "1"}])

        rows = await _client(handler).select(
            "ludo_event_invitations",
            columns="id,status",
            filters={"status": "pending"},
            order="created_at",
            descending=True,
            limit=5,
            access_token="user-token",
        )

        assert rows == [{"id": "1"}]
        request = seen[0]
        assert request.url.path == "/rest/v1/ludo_event_invitations"
        assert request.url.params["select"] == "id,status"
        assert request.url.params["status"] == "eq.pending"
        assert request.url.params["order"] == "created_at.desc"
        assert request.url.params["limit"] == "5"
        assert request.headers["authorization"] == "Bearer user-token"
        assert request.headers["apikey"] == "test-anon-key"

    @pytest.mark.asyncio
    async def test_anonymous_calls_use_public_key(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        await _client(handler).select("game_catalog")
        assert seen[0].headers["authorization"] == "Bearer test-anon-key"

    @pytest.mark.asyncio
    async def test_insert_asks_for_representation(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json=json.loads(request.content))

        rows = await _client(handler).insert("messages", {"content": "gg"})
        assert rows == [{"content": "gg"}]
        assert seen[0].headers["prefer"] == "return=representation"

    @pytest.mark.asyncio
    async def test_admin_delete_uses_service_key(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(204)

        await _client(handler).delete("users", {"id": "u1"}, admin=True)
        request = seen[0]
        assert request.method == "DELETE"
        assert request.url.params["id"] == "eq.u1"
        assert request.headers["apikey"] == "test-service-key"

    @pytest.mark.asyncio
    async def test_unfiltered_mutations_refused(self):
        client = _client(lambda request: httpx.Response(204))
        with pytest.raises(ValueError):
            await client.delete("users", {})
        with pytest.raises(ValueError):
            await client.update("users", {"bio": ""}, {})


class TestErrors:

    @pytest.mark.asyncio
    async def test_429_is_recognisable_by_the_guard(self):
        client = _client(lambda request: httpx.Response(429, json={"message": "slow down"}))

        with pytest.raises(BackendError) as exc_info:
            await client.select("game_catalog")

        assert str(exc_info.value).startswith("429 Too Many Requests")
        assert exc_info.value.status_code == 429
        assert is_rate_limit_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_server_error_detail(self):
        client = _client(lambda request: httpx.Response(500, json={"message": "relation missing"}))
        with pytest.raises(BackendError) as exc_info:
            await client.select("game_catalog")
        assert exc_info.value.message == "500 Internal Server Error: relation missing"
        assert not is_rate_limit_error(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(BackendError):
            await _client(handler).select("game_catalog")
