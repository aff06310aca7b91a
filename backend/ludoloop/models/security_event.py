"""
LudoLoop Backend — SecurityEvent SQLAlchemy Model
===================================================

What:  ORM model for the `security_events` table.
Why:   Login history is the input of the new-device and suspicious-activity
       checks, and users can review their own security log.
How:   Inherits from the shared DeclarativeBase; Alembic reads it for migrations.
Who:   Written and queried by SecurityEventService.

Table Design:
    - Portable column types (Uuid, JSON, DateTime(timezone=True)) so the same
      model runs on PostgreSQL in production and SQLite in tests
    - ip_address / user_agent are real columns (not only inside event_data)
      because the history checks filter and group on them
    - Composite index (user_id, event_type, created_at) serves every query
      the service issues: "this user's <type> events since <time>"
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ludoloop.database import Base


class SecurityEvent(Base):
    """
    One security-relevant occurrence for one user.

    event_type values:
        login_attempt, password_change, email_change, suspicious_activity,
        new_device_login, account_recovery, security_settings_change
    """

    __tablename__ = "security_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # What: Auth provider user id (UUID string); no FK, users live in the provider
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    event_type: Mapped[str] = mapped_column(String(50), nullable=False)

    # What: Free-form details (reason, user agent, timestamp, …)
    event_data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # What: Client IP as reported by the proxy chain (IPv6 fits in 45 chars)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False, default="127.0.0.1")

    user_agent: Mapped[str] = mapped_column(Text, nullable=False, default="")

    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_security_events_user_type_created", "user_id", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<SecurityEvent(id={self.id}, user_id='{self.user_id}', "
            f"event_type='{self.event_type}', success={self.success})>"
        )
