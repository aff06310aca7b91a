"""
LudoLoop Backend — Security Event Schemas
===========================================

What:  Request/response models for logging and listing security events.
Who:   Used by routes/security_events.py.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

EVENT_TYPES = {
    "login_attempt",
    "password_change",
    "email_change",
    "suspicious_activity",
    "new_device_login",
    "account_recovery",
    "security_settings_change",
}


class SecurityEventCreate(BaseModel):
    """
    What:  Body of POST /api/security-events.
    Who:   Sent by the frontend after sign-in, password change, etc.
    """
    event_type: str = Field(description=f"One of: {', '.join(sorted(EVENT_TYPES))}")
    success: bool = Field(default=True)
    additional_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type")
    @classmethod
    def validate_event_type(cls, v: str) -> str:
        if v not in EVENT_TYPES:
            raise ValueError(f"Invalid event_type '{v}'. Must be one of: {sorted(EVENT_TYPES)}")
        return v


class SecurityEventResponse(BaseModel):
    id: uuid.UUID
    event_type: str
    event_data: Dict[str, Any]
    ip_address: str
    user_agent: str
    success: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SecurityEventLogResponse(BaseModel):
    """
    Result of logging one event.

    derived_events lists what the login history checks added on top
    (new_device_login, suspicious_activity); empty for other event types.
    """
    success: bool = True
    event: SecurityEventResponse
    derived_events: List[SecurityEventResponse] = Field(default_factory=list)


class SecurityEventListResponse(BaseModel):
    events: List[SecurityEventResponse]
    count: int
    limit: Optional[int] = None
