"""
LudoLoop Backend — Application Package Initializer
===================================================

What: Marks the `ludoloop` directory as a Python package.
Why:  Enables module imports like `from ludoloop.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is a thin layer in front of a hosted backend-as-a-service
    (auth provider + REST data API). The only part with real control flow is
    the request pipeline:

    ┌─────────────────────────────────────┐
    │   Middleware (per-request chain)    │  ← security events, session refresh
    ├─────────────────────────────────────┤
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │    Services (clients + guard)       │  ← auth, data API, rate-limit guard
    ├─────────────────────────────────────┤
    │  Models & Schemas (security events) │  ← SQLAlchemy ORM + Pydantic
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
