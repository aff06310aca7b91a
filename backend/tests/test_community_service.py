"""
LudoLoop Backend — Community Data Service Tests
=================================================

What we test:
    ✅ Catalog rows map to the BGG-compatible shape (id fallback, thumbnail)
    ✅ LIKE wildcards in the query match literally
    ✅ Invitations parse into EventInvitation models
"""

import pytest

from ludoloop.services.community_service import community_service, to_search_result


class TestToSearchResult:

    def test_row_without_bgg_id_uses_catalog_id(self):
        result = to_search_result({"id": "row-1", "title": "Azul", "thumbnail": "t.jpg", "image": "i.jpg"})

        assert result.id == "row-1"
        assert result.db_id == "row-1"
        assert result.thumbnail == "t.jpg"
        assert result.source == "local"

    def test_missing_title_becomes_empty_name(self):
        assert to_search_result({"id": "row-2", "bgg_id": 7}).name == ""


class TestSearchGames:

    @pytest.mark.asyncio
    async def test_wildcards_are_escaped(self, backend_client, guard, hosted):
        await community_service.search_games(backend_client, guard, " 100%_done ")

        request = hosted.rest_requests("game_catalog")[0]
        assert request.url.params["title"] == "ilike.%100\\%\\_done%"

    @pytest.mark.asyncio
    async def test_none_query(self, backend_client, guard, hosted):
        assert await community_service.search_games(backend_client, guard, None) == []
        assert hosted.requests == []


class TestListInvitations:

    @pytest.mark.asyncio
    async def test_rows_become_models(self, backend_client, guard, hosted):
        hosted.tables["ludo_event_invitations"] = [{
            "id": "inv-9",
            "status": "pending",
            "message": None,
            "created_at": "2026-10-02T09:30:00+00:00",
            "event_id": "event-1",
            "inviter_id": "user-3",
        }]

        invitations = await community_service.list_invitations(
            backend_client, guard, "user-1", access_token="valid-access"
        )

        assert [i.id for i in invitations] == ["inv-9"]
        assert invitations[0].created_at.year == 2026
