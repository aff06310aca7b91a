"""
LudoLoop Backend — Security Event Routes
==========================================

What:  POST /api/security-events (log one event for the caller) and
       GET /api/security-events (the caller's recent events).
Who:   The frontend logs sign-ins, password/email changes and recovery
       flows here; the account security page lists them.

Client IP and user agent come from the request (proxy headers first), never
from the body, so a client cannot forge where an event came from.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ludoloop.database import get_db_session
from ludoloop.dependencies import get_client_info, get_current_user, get_security_event_service
from ludoloop.schemas.common import ErrorResponse
from ludoloop.schemas.security_event import (
    SecurityEventCreate,
    SecurityEventListResponse,
    SecurityEventLogResponse,
    SecurityEventResponse,
)
from ludoloop.services.security_event_service import ClientInfo, SecurityEventService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Security Events"])


@router.post(
    "/security-events",
    response_model=SecurityEventLogResponse,
    status_code=201,
    responses={
        401: {"description": "Not signed in", "model": ErrorResponse},
        422: {"description": "Unknown event type"},
        500: {"description": "Event store error", "model": ErrorResponse},
    },
    summary="Log a security event",
    description=(
        "Stores the event for the signed-in user. A successful login_attempt also "
        "runs the new-device and suspicious-activity checks; their findings are "
        "stored and returned as derived_events."
    ),
)
async def log_security_event(
    body: SecurityEventCreate,
    user: Dict[str, Any] = Depends(get_current_user),
    client: ClientInfo = Depends(get_client_info),
    db: AsyncSession = Depends(get_db_session),
    service: SecurityEventService = Depends(get_security_event_service),
) -> SecurityEventLogResponse:
    event_data = dict(body.additional_data)
    event_data.update(
        user_agent=client.user_agent,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )

    logged, *derived = await service.log_event(
        db=db,
        user_id=user["id"],
        event_type=body.event_type,
        client=client,
        success=body.success,
        event_data=event_data,
    )
    return SecurityEventLogResponse(
        success=True,
        event=SecurityEventResponse.model_validate(logged),
        derived_events=[SecurityEventResponse.model_validate(e) for e in derived],
    )


@router.get(
    "/security-events",
    response_model=SecurityEventListResponse,
    responses={401: {"description": "Not signed in", "model": ErrorResponse}},
    summary="List recent security events",
)
async def list_security_events(
    limit: int = Query(default=20, ge=1, le=100, description="Maximum events to return"),
    user: Dict[str, Any] = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    service: SecurityEventService = Depends(get_security_event_service),
) -> SecurityEventListResponse:
    events = await service.list_events(db=db, user_id=user["id"], limit=limit)
    return SecurityEventListResponse(
        events=[SecurityEventResponse.model_validate(e) for e in events],
        count=len(events),
        limit=limit,
    )
