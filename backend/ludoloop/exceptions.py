"""
LudoLoop Backend — Custom Exception Hierarchy
===============================================

What:  Defines application-specific exceptions for the request pipeline and
       the thin data endpoints behind it.
Why:   Custom exceptions enable targeted recovery (the session middleware
       recovers from AuthRefreshFailure, the rate-limit guard from 429s) and
       consistent HTTP error responses from the global handlers in main.py.
How:   Each exception class carries a message and optional context dict.

Exception Hierarchy:
    LudoLoopError (base)
    ├── ConfigurationError           → 503 when a route needs the missing service
    ├── AuthenticationRequiredError  → 401 Unauthorized
    ├── RateLimitError               → 429 Too Many Requests
    ├── AuthProviderError            → 500 Internal Server Error
    │   └── AuthRefreshFailure       → recovered locally (cookies purged)
    ├── BackendError                 → 500 Internal Server Error
    └── DatabaseError                → 500 Internal Server Error

Recovery policy:
    The middleware chain never lets a provider failure abort the response.
    AuthRefreshFailure → auth cookies deleted, request continues anonymous.
    RateLimitError     → fallback value when the call site supplies one.
    ConfigurationError → pass-through middleware plus a warning; routes that
                         need the missing service answer 503.
"""

from typing import Any, Dict, Optional


class LudoLoopError(Exception):
    """
    Base exception for all LudoLoop application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(LudoLoopError):
    """
    Raised when required credentials (provider URL, keys) are missing.

    The lifespan logs it and the session middleware turns into a
    pass-through. Routes that need the missing service answer
    HTTP 503 Service Unavailable.
    """

    def __init__(
        self,
        message: str = "Application is not fully configured",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationRequiredError(LudoLoopError):
    """
    Raised by route dependencies when no user could be resolved for the request.
    HTTP: 401 Unauthorized
    """

    def __init__(
        self,
        message: str = "You must be signed in to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitError(LudoLoopError):
    """
    Raised by the rate-limit guard while it is tripped and the call site gave
    no fallback value.

    HTTP: 429 Too Many Requests, with a Retry-After header computed from the
    guard's reset timestamp.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"The data service is cooling down after too many requests. "
            f"Please retry in {retry_after} seconds."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class AuthProviderError(LudoLoopError):
    """
    Raised when the auth provider rejects a call or cannot be reached.

    Attributes:
        status_code: HTTP status returned by the provider (None on transport errors)
        code:        Machine-readable provider error code, e.g. "session_not_found"
    """

    def __init__(
        self,
        message: str = "Authentication service error",
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        if code:
            ctx["code"] = code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code
        self.code = code


class AuthRefreshFailure(AuthProviderError):
    """
    The provider reported that the refresh token is invalid or unknown.

    Recovered locally by the session refresher: every auth cookie is deleted
    and the request continues unauthenticated.
    """


class BackendError(LudoLoopError):
    """
    Raised when the hosted REST data API answers with a non-2xx status.

    The message always starts with "<status> <reason phrase>" (for example
    "429 Too Many Requests: ...") so the rate-limit guard can recognise it.
    """

    def __init__(
        self,
        message: str = "Data service request failed",
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message=message, context=ctx)
        self.status_code = status_code


class DatabaseError(LudoLoopError):
    """
    Raised when the security event store fails unexpectedly.
    HTTP: 500 (generic message; details logged server-side only)
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
