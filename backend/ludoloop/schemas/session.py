"""
LudoLoop Backend — Session & Account Schemas
==============================================

What:  Response models for the session, sign-out and account endpoints.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class SessionUser(BaseModel):
    """The subset of the provider's user object the frontend needs."""
    id: str = Field(description="Provider user id (UUID)")
    email: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)
    user_metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}


class SessionResponse(BaseModel):
    authenticated: bool = Field(description="Whether a user was resolved for this request")
    user: Optional[SessionUser] = Field(default=None)


class ActionResponse(BaseModel):
    """Result envelope for mutations (sign-out, account deletion)."""
    success: bool = Field(default=True)
    message: str = Field(description="Human-readable outcome")
