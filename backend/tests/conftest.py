"""
LudoLoop Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Tests never reach the real hosted backend or a real PostgreSQL server.
How:   - Environment is configured BEFORE any ludoloop import (the settings
         singleton and the database engine are created at import time)
       - The hosted backend is faked with httpx.MockTransport (FakeHostedBackend)
       - The security event store is a throwaway SQLite file via aiosqlite
       - Time is simulated with FakeClock for the rate-limit guard

Fixture Hierarchy:
    ├── fake_clock:       manually advanced monotonic clock
    ├── guard:            RateLimitGuard driven by fake_clock
    ├── hosted:           FakeHostedBackend (auth + data API)
    ├── auth_client / backend_client: clients wired to `hosted`
    ├── mock_db_session:  AsyncMock session for error-path unit tests
    ├── event_store:      creates/drops the security_events table
    ├── db_session:       real AsyncSession on the SQLite store
    ├── app:              create_app() with fake clients and guard on app.state
    └── test_client:      HTTPX AsyncClient over ASGITransport
"""

import json
import os
import tempfile
import time
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

_test_dir = tempfile.mkdtemp(prefix="ludoloop_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_dir}/security_events.db"
os.environ["SUPABASE_URL"] = "https://testref.supabase.co"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-key"
os.environ["LOG_LEVEL"] = "WARNING"

from ludoloop.services.auth_client import AuthClient  # noqa: E402
from ludoloop.services.backend_client import BackendClient  # noqa: E402
from ludoloop.services.rate_limit_guard import RateLimitGuard  # noqa: E402
from ludoloop.services.session_cookies import SessionTokenPair, encode_session_value  # noqa: E402

SESSION_COOKIE = "sb-testref-auth-token"
SUPABASE_URL = "https://testref.supabase.co"

TEST_USER = {
    "id": "6f1c2d3e-0000-4000-8000-000000000001",
    "email": "meeple@example.com",
    "role": "authenticated",
    "user_metadata": {"username": "meeple"},
}


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHostedBackend:
    """
    httpx.MockTransport handler imitating the auth provider and the data API.

    Configure per test:
        users:        access token → user dict       (GET /auth/v1/user)
        sessions:     refresh token → session dict   (POST /auth/v1/token)
        tables:       table name → rows              (GET /rest/v1/<table>)
        rest_status:  status returned by every data API call (default 200)
    Inspect afterwards:
        requests, deleted_users, deleted_rows, signed_out
    """

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rest_status = 200
        self.requests: List[httpx.Request] = []
        self.deleted_users: List[str] = []
        self.deleted_rows: List[tuple] = []
        self.signed_out: List[str] = []

    def rest_requests(self, table: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == f"/rest/v1/{table}"]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        bearer = request.headers.get("authorization", "").replace("Bearer ", "", 1)

        if path == "/auth/v1/user":
            user = self.users.get(bearer)
            if user is None:
                return httpx.Response(401, json={"code": 401, "error_code": "bad_jwt", "msg": "invalid JWT"})
            return httpx.Response(200, json=user)

        if path == "/auth/v1/token":
            refresh_token = json.loads(request.content)["refresh_token"]
            session = self.sessions.get(refresh_token)
            if session is None:
                return httpx.Response(400, json={
                    "code": 400,
                    "error_code": "refresh_token_not_found",
                    "msg": "Invalid Refresh Token: Refresh Token Not Found",
                })
            return httpx.Response(200, json=session)

        if path == "/auth/v1/logout":
            self.signed_out.append(bearer)
            return httpx.Response(204)

        if path.startswith("/auth/v1/admin/users/"):
            self.deleted_users.append(path.rsplit("/", 1)[-1])
            return httpx.Response(200, json={})

        if path.startswith("/rest/v1/"):
            table = path[len("/rest/v1/"):]
            if self.rest_status != 200:
                return httpx.Response(self.rest_status, json={"message": "upstream refused"})
            if request.method == "GET":
                return httpx.Response(200, json=self.tables.get(table, []))
            if request.method == "DELETE":
                self.deleted_rows.append((table, dict(request.url.params)))
                return httpx.Response(204)
            return httpx.Response(201, json=json.loads(request.content or b"[]"))

        return httpx.Response(404, json={"message": "not found"})


def session_payload(
    access_token: str = "valid-access",
    refresh_token: str = "valid-refresh",
    expires_at: Optional[int] = None,
    user: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "bearer",
        "expires_in": 3600,
        "expires_at": expires_at if expires_at is not None else int(time.time()) + 3600,
    }
    if user is not None:
        payload["user"] = user
    return payload


def session_cookie_value(**kwargs: Any) -> str:
    """Cookie value exactly as the browser SDK would store it."""
    return encode_session_value(SessionTokenPair.from_session(session_payload(**kwargs)))


def cookie_header(cookies: Dict[str, str]) -> Dict[str, str]:
    return {"Cookie": "; ".join(f"{name}={value}" for name, value in cookies.items())}


def set_cookie_headers(response: httpx.Response) -> Dict[str, str]:
    """name → full Set-Cookie header of the response."""
    headers = {}
    for header in response.headers.get_list("set-cookie"):
        headers[header.split("=", 1)[0]] = header
    return headers


def deleted_cookie_names(response: httpx.Response) -> List[str]:
    return [name for name, header in set_cookie_headers(response).items() if "Max-Age=0" in header]


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def guard(fake_clock):
    return RateLimitGuard(cooldown_seconds=60.0, clock=fake_clock)


@pytest.fixture
def hosted():
    backend = FakeHostedBackend()
    backend.users["valid-access"] = dict(TEST_USER)
    return backend


@pytest.fixture
def auth_client(hosted):
    return AuthClient(
        SUPABASE_URL,
        "test-anon-key",
        service_role_key="test-service-key",
        transport=httpx.MockTransport(hosted),
    )


@pytest.fixture
def backend_client(hosted):
    return BackendClient(
        SUPABASE_URL,
        "test-anon-key",
        service_role_key="test-service-key",
        transport=httpx.MockTransport(hosted),
    )


@pytest.fixture
def mock_db_session():
    """
    A MagicMock simulating AsyncSession, for database failure paths.

    Usage:
        mock_db_session.flush.side_effect = SQLAlchemyError("disk full")
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def event_store():
    """Create the security_events table for one test, drop it afterwards."""
    from ludoloop.database import Base, engine
    from ludoloop.models.security_event import SecurityEvent  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    # Pooled aiosqlite connections are bound to this test's event loop
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(event_store):
    from ludoloop.database import async_session_factory

    async with async_session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def app(auth_client, backend_client, guard):
    """A fresh application whose hosted backend is FakeHostedBackend."""
    from ludoloop.main import create_app

    application = create_app()
    application.state.auth_client = auth_client
    application.state.backend_client = backend_client
    application.state.rate_limit_guard = guard
    return application


@pytest_asyncio.fixture
async def test_client(app):
    """
    HTTPX AsyncClient talking to `app` in-process.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
