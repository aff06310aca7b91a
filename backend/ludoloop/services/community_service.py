"""
LudoLoop Backend — Community Data Service
===========================================

What:  Read paths of the community platform that the API serves directly:
       game catalog search and pending event invitations.
Why:   Both are plain table reads against the hosted data API; they live here
       so routes stay HTTP-only and the rate-limit policy of each read is
       stated in one place.
How:   Every backend call goes through RateLimitGuard.run_guarded():
           search_games()      no fallback → 429 while the guard is tripped
           list_invitations()  fallback [] → the page renders, just empty
"""

import logging
from typing import Any, Dict, List, Optional

from ludoloop.services.backend_client import BackendClient
from ludoloop.services.rate_limit_guard import RateLimitGuard
from ludoloop.schemas.community import EventInvitation, GameSearchResult

logger = logging.getLogger(__name__)

GAME_CATALOG_TABLE = "game_catalog"
INVITATIONS_TABLE = "ludo_event_invitations"
SEARCH_LIMIT = 20


def _escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def to_search_result(row: Dict[str, Any]) -> GameSearchResult:
    """Map a game_catalog row to the BGG-compatible search shape."""
    bgg_id = row.get("bgg_id")
    return GameSearchResult(
        id=str(bgg_id) if bgg_id is not None else str(row["id"]),
        name=row.get("title") or "",
        yearPublished=row.get("year_published"),
        image=row.get("image"),
        thumbnail=row.get("thumbnail") or row.get("image"),
        minPlayers=row.get("min_players"),
        maxPlayers=row.get("max_players"),
        playingTime=row.get("playing_time"),
        description=row.get("description"),
        source="local",
        db_id=str(row["id"]),
    )


class CommunityService:

    async def search_games(
        self,
        backend: BackendClient,
        guard: RateLimitGuard,
        query: Optional[str],
        access_token: Optional[str] = None,
    ) -> List[GameSearchResult]:
        """
        Case-insensitive title search over the local game catalog.

        An empty query returns [] without touching the backend.
        """
        term = (query or "").strip()
        if not term:
            return []

        rows = await guard.run_guarded(
            lambda: backend.select(
                GAME_CATALOG_TABLE,
                filters={"title": ("ilike", f"%{_escape_like(term)}%")},
                limit=SEARCH_LIMIT,
                access_token=access_token,
            )
        )
        logger.debug("Game search '%s' returned %d rows", term, len(rows))
        return [to_search_result(row) for row in rows]

    async def list_invitations(
        self,
        backend: BackendClient,
        guard: RateLimitGuard,
        user_id: str,
        access_token: Optional[str] = None,
    ) -> List[EventInvitation]:
        """Pending invitations of `user_id`, newest first; [] while throttled."""
        rows = await guard.run_guarded(
            lambda: backend.select(
                INVITATIONS_TABLE,
                columns="id,status,message,created_at,event_id,inviter_id",
                filters={"invitee_id": user_id, "status": "pending"},
                order="created_at",
                descending=True,
                access_token=access_token,
            ),
            fallback=[],
        )
        return [EventInvitation.model_validate(row) for row in rows]


community_service = CommunityService()
