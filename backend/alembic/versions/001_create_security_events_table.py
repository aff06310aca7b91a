"""Create security_events table

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the `security_events` table behind POST/GET /api/security-events
       and the login history checks.
How:   Mirrors ludoloop/models/security_event.py. Uses the portable
       sa.Uuid / sa.JSON types so the same migration runs on PostgreSQL
       (uuid / json) and SQLite.

Rollback: downgrade() drops the table (the security log is lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "security_events",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column(
            "user_id",
            sa.String(64),
            nullable=False,
            comment="Auth provider user id; users live in the provider, so no FK",
        ),
        sa.Column(
            "event_type",
            sa.String(50),
            nullable=False,
            comment="login_attempt, password_change, new_device_login, suspicious_activity, ...",
        ),
        sa.Column("event_data", sa.JSON(), nullable=False),
        sa.Column(
            "ip_address",
            sa.String(45),
            nullable=False,
            server_default=sa.text("'127.0.0.1'"),
            comment="First X-Forwarded-For hop, X-Real-IP, or the socket peer",
        ),
        sa.Column("user_agent", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Every history query is "this user's <type> events since <time>"
    op.create_index(
        "idx_security_events_user_type_created",
        "security_events",
        ["user_id", "event_type", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_security_events_user_type_created", table_name="security_events")
    op.drop_table("security_events")
