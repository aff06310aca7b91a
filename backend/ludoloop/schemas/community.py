"""
LudoLoop Backend — Community Data Schemas
===========================================

What:  Response models for the game catalog search and event invitations.
How:   Rows from the hosted data API are mapped into these models by the
       services; field names follow what the frontend already consumes
       (camelCase for the game search, which mirrors the BoardGameGeek format).
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class GameSearchResult(BaseModel):
    """
    One catalog game in the BoardGameGeek-compatible search shape.

    id is the BGG id when the catalog row has one (so results can be merged
    with live BGG results), otherwise the internal UUID.
    """
    id: str = Field(description="BGG id if known, else internal id")
    name: str
    yearPublished: Optional[int] = None
    image: Optional[str] = None
    thumbnail: Optional[str] = None
    minPlayers: Optional[int] = None
    maxPlayers: Optional[int] = None
    playingTime: Optional[int] = None
    description: Optional[str] = None
    source: str = Field(default="local", description="Always 'local' for catalog hits")
    db_id: str = Field(description="Internal catalog UUID")


class EventInvitation(BaseModel):
    """A pending invitation of the current user to a game event."""
    id: str
    status: str
    message: Optional[str] = None
    created_at: datetime
    event_id: str
    inviter_id: str

    model_config = {"extra": "ignore"}
