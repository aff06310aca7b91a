"""
LudoLoop Backend — Shared Response Schemas
============================================

What:  Error and health response models used across all routers.
Why:   Clients need one consistent structure to parse errors programmatically.
"""

from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "rate_limited",
            "message": "The data service is cooling down after too many requests. ...",
            "details": {"retry_after": 42},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Health check response showing service and dependency status.

    The auth provider is reported as configured/not_configured only: probing
    it on every health check would spend the very request budget the
    rate-limit guard protects.
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Security event store: connected, disconnected")
    auth: str = Field(description="Auth provider configuration: configured, not_configured")
    backend_guard: str = Field(description="Rate-limit guard state: open, tripped")
    uptime_seconds: float = Field(description="Seconds since service started")
