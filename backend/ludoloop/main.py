"""
LudoLoop Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, per-app clients, route mounting,
       error mapping and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn ludoloop.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────────┐
    │                        FastAPI App                           │
    │                                                              │
    │  Middleware Chain:                                           │
    │  ┌─────────┐ ┌────────────┐ ┌──────────┐ ┌────────────────┐  │
    │  │ Req ID  │→│ Access log │→│ Security │→│ Session refresh│  │
    │  └─────────┘ └────────────┘ └──────────┘ └────────────────┘  │
    │                                                              │
    │  Per-app state (app.state):                                  │
    │    config · auth_client · backend_client · rate_limit_guard  │
    │    security_events                                           │
    │                                                              │
    │  Routes:                                                     │
    │    /health · /api/session · /api/auth/sign-out · /api/account│
    │    /api/games/search · /api/events/invitations               │
    │    /api/security-events                                      │
    └──────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging → configuration check (missing credentials are a
              warning, not a crash)
    Shutdown: close the provider HTTP clients → dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from ludoloop import __version__
from ludoloop.config import Settings, settings
from ludoloop.database import dispose_engine
from ludoloop.exceptions import (
    AuthenticationRequiredError,
    AuthProviderError,
    BackendError,
    ConfigurationError,
    DatabaseError,
    LudoLoopError,
    RateLimitError,
)
from ludoloop.middleware.logging import RequestLoggingMiddleware
from ludoloop.middleware.request_id import RequestIDMiddleware, request_id_var
from ludoloop.middleware.security import SecurityEventMiddleware
from ludoloop.middleware.session import SessionRefreshMiddleware
from ludoloop.routes import events, games, health, security_events, session
from ludoloop.services.auth_client import AuthClient
from ludoloop.services.backend_client import BackendClient
from ludoloop.services.rate_limit_guard import RateLimitGuard, is_rate_limit_error
from ludoloop.services.security_event_service import SecurityEventService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Called once from the lifespan, before anything else logs. Every module
    logs through logging.getLogger(__name__); the access log and the
    security event log have their own names (ludoloop.access,
    ludoloop.security) so they can be routed separately.
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every connection and statement at INFO/DEBUG
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    config: Settings = getattr(app.state, "config", settings)
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("LudoLoop Backend %s starting up...", __version__)

    try:
        config.validate_required_for_production()
    except ConfigurationError as e:
        # Health checks and public routes keep working; the session
        # middleware turns into a pass-through
        logger.warning("%s", e.message)

    logger.info(
        "Session cookie: %s | protected paths: %s | guard cooldown: %.0fs",
        config.session_cookie_name,
        ", ".join(config.protected_paths_list) or "-",
        config.rate_limit_cooldown_seconds,
    )
    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("LudoLoop Backend shutting down...")
    for name in ("auth_client", "backend_client"):
        client = getattr(app.state, name, None)
        if client is not None:
            await client.aclose()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, rid: str, details: Optional[dict] = None) -> dict:
    body = {"error": error, "message": message, "request_id": rid}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy to HTTP responses.

    Handler hierarchy:
        AuthenticationRequiredError  → 401
        RateLimitError               → 429 + Retry-After
        BackendError (429 upstream)  → 429 + Retry-After
        ConfigurationError           → 503
        AuthProviderError            → 500 (generic message)
        BackendError                 → 500 (generic message)
        DatabaseError                → 500 (generic message)
        LudoLoopError (base)         → 500
        Exception (fallback)         → 500

    Provider and database details are logged server-side, never returned.
    """

    @app.exception_handler(AuthenticationRequiredError)
    async def handle_authentication_required(request: Request, exc: AuthenticationRequiredError):
        rid = request_id_var.get("")
        return JSONResponse(
            status_code=401,
            content=_error_body("authentication_required", exc.message, rid),
        )

    @app.exception_handler(RateLimitError)
    async def handle_rate_limit(request: Request, exc: RateLimitError):
        rid = request_id_var.get("")
        return JSONResponse(
            status_code=429,
            content=_error_body("rate_limited", exc.message, rid, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        rid = request_id_var.get("")
        logger.error("[%s] Configuration error: %s", rid, exc.message)
        return JSONResponse(
            status_code=503,
            content=_error_body(
                "service_unavailable",
                "This feature is temporarily unavailable.",
                rid,
            ),
        )

    @app.exception_handler(BackendError)
    async def handle_backend_error(request: Request, exc: BackendError):
        rid = request_id_var.get("")
        if is_rate_limit_error(exc):
            # The guard tripped on this very call and there was no fallback
            guard: RateLimitGuard = request.app.state.rate_limit_guard
            retry_after = guard.retry_after() or int(guard.cooldown_seconds)
            limited = RateLimitError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content=_error_body("rate_limited", limited.message, rid, limited.context),
                headers={"Retry-After": str(retry_after)},
            )
        logger.error("[%s] Data API error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error",
                "An internal error occurred. Please try again later.",
                rid,
            ),
        )

    @app.exception_handler(AuthProviderError)
    async def handle_auth_provider_error(request: Request, exc: AuthProviderError):
        rid = request_id_var.get("")
        logger.error("[%s] Auth provider error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error",
                "The authentication service failed. Please try again later.",
                rid,
            ),
        )

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "server_error",
                "An internal error occurred. Please try again later.",
                rid,
            ),
        )

    @app.exception_handler(LudoLoopError)
    async def handle_ludoloop_error(request: Request, exc: LudoLoopError):
        rid = request_id_var.get("")
        logger.error("[%s] %s: %s | Context: %s", rid, type(exc).__name__, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", exc.message, rid),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
                rid,
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(config: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Provider clients are created only when SUPABASE_URL and SUPABASE_ANON_KEY
    are set; otherwise app.state holds None and the session middleware is a
    pass-through. Tests replace app.state clients with MockTransport-backed ones.
    """
    config = config or settings

    app = FastAPI(
        title="LudoLoop API",
        description=(
            "Request pipeline and thin data endpoints of the LudoLoop board-game "
            "community platform: session refresh, security event detection and a "
            "shared rate-limit guard in front of the hosted backend."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Per-app state ─────────────────────────────────────────────────────
    app.state.config = config
    app.state.rate_limit_guard = RateLimitGuard(cooldown_seconds=config.rate_limit_cooldown_seconds)
    app.state.security_events = SecurityEventService(
        lookback_minutes=config.security_lookback_minutes,
        failed_login_threshold=config.failed_login_threshold,
        distinct_ip_threshold=config.distinct_ip_threshold,
    )
    app.state.auth_client = None
    app.state.backend_client = None
    if config.auth_configured:
        app.state.auth_client = AuthClient(
            base_url=config.supabase_url,
            anon_key=config.supabase_anon_key,
            service_role_key=config.supabase_service_role_key,
            timeout=config.backend_timeout_seconds,
        )
        app.state.backend_client = BackendClient(
            base_url=config.supabase_url,
            anon_key=config.supabase_anon_key,
            service_role_key=config.supabase_service_role_key,
            timeout=config.backend_timeout_seconds,
        )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → Security → Session → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(SessionRefreshMiddleware, config=config)
    app.add_middleware(SecurityEventMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(session.router)
    app.include_router(games.router)
    app.include_router(events.router)
    app.include_router(security_events.router)

    return app


# uvicorn ludoloop.main:app
app = create_app()
