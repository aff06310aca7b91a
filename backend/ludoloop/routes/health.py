"""
LudoLoop Backend — Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the security event store with SELECT 1, reports whether the
       auth provider is configured and whether the rate-limit guard is tripped.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   database reachable, provider configured, guard open (HTTP 200)
    - degraded:  provider not configured or guard tripped (HTTP 200)
    - unhealthy: database unreachable (HTTP 503)

The hosted provider is never called from here: a probe every few seconds
would spend the request budget the rate-limit guard exists to protect.
"""

import logging
import time

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text

from ludoloop import __version__
from ludoloop.database import engine
from ludoloop.dependencies import get_rate_limit_guard
from ludoloop.schemas.common import HealthResponse
from ludoloop.services.rate_limit_guard import RateLimitGuard

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Security event store unreachable", "model": HealthResponse}},
)
async def health_check(
    request: Request,
    response: Response,
    guard: RateLimitGuard = Depends(get_rate_limit_guard),
) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    auth_configured = getattr(request.app.state, "auth_client", None) is not None
    auth_status = "configured" if auth_configured else "not_configured"

    guard_state = guard.state
    if overall == "healthy" and (guard_state == RateLimitGuard.TRIPPED or auth_status != "configured"):
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        auth=auth_status,
        backend_guard=guard_state,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
