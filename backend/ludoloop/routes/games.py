"""
LudoLoop Backend — Game Catalog Search Route
==============================================

What:  GET /api/games/search?query=: title search over the local game catalog.
Who:   The game picker of the collection and event forms.

Results use the BoardGameGeek field names so the frontend can merge them
with live BGG lookups; `source` is always "local".
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ludoloop.dependencies import get_access_token, get_backend_client, get_rate_limit_guard
from ludoloop.schemas.common import ErrorResponse
from ludoloop.schemas.community import GameSearchResult
from ludoloop.services.backend_client import BackendClient
from ludoloop.services.community_service import community_service
from ludoloop.services.rate_limit_guard import RateLimitGuard

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/games", tags=["Games"])


@router.get(
    "/search",
    response_model=List[GameSearchResult],
    responses={
        429: {"description": "Data service cooling down", "model": ErrorResponse},
        500: {"description": "Data service error", "model": ErrorResponse},
    },
    summary="Search the game catalog",
    description="Case-insensitive title match, at most 20 results. An empty query returns [].",
)
async def search_games(
    query: Optional[str] = Query(default=None, max_length=200, description="Title fragment"),
    backend: BackendClient = Depends(get_backend_client),
    guard: RateLimitGuard = Depends(get_rate_limit_guard),
    access_token: Optional[str] = Depends(get_access_token),
) -> List[GameSearchResult]:
    return await community_service.search_games(
        backend=backend,
        guard=guard,
        query=query,
        access_token=access_token,
    )
