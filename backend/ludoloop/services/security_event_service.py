"""
LudoLoop Backend — Security Event Service
===========================================

What:  Records security events for a user and runs the login history checks.
Why:   The request pipeline only logs what it sees in one request. Patterns
       across requests (a new device, a burst of failed logins, logins from
       many IPs) need the stored history.
How:   Stateless service over an AsyncSession; every method receives the
       session from the caller (route dependency), like the rest of the
       service layer.

History checks (run when a successful login_attempt is logged):
    new device        no earlier successful login with the same IP + user agent
    suspicious        ≥ failed_login_threshold failed logins in the lookback window
                      ≥ distinct_ip_threshold distinct IPs of successful logins
                        in the lookback window
                      user agent of an automated client
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ludoloop.config import settings
from ludoloop.exceptions import DatabaseError
from ludoloop.models.security_event import SecurityEvent
from ludoloop.services.security_detector import (
    AUTOMATION_MARKERS,
    LOGIN_ATTEMPT,
    NEW_DEVICE_LOGIN,
    SUSPICIOUS_ACTIVITY,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientInfo:
    ip_address: str
    user_agent: str


class SecurityEventService:
    """
    Responsibilities:
        - record_event(): persist one event
        - log_event(): persist + run history checks for successful logins
        - list_events(): a user's most recent events
        - check_new_device() / check_suspicious_activity(): history queries
    """

    def __init__(
        self,
        lookback_minutes: Optional[int] = None,
        failed_login_threshold: Optional[int] = None,
        distinct_ip_threshold: Optional[int] = None,
    ):
        self.lookback = timedelta(minutes=lookback_minutes or settings.security_lookback_minutes)
        self.failed_login_threshold = failed_login_threshold or settings.failed_login_threshold
        self.distinct_ip_threshold = distinct_ip_threshold or settings.distinct_ip_threshold

    async def record_event(
        self,
        db: AsyncSession,
        user_id: str,
        event_type: str,
        client: ClientInfo,
        success: bool = True,
        event_data: Optional[Dict[str, Any]] = None,
    ) -> SecurityEvent:
        """Persist one event and return it with its id assigned."""
        event = SecurityEvent(
            user_id=user_id,
            event_type=event_type,
            event_data=event_data or {},
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            success=success,
            created_at=datetime.now(timezone.utc),
        )
        try:
            db.add(event)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to record security event %s for %s: %s", event_type, user_id, e)
            raise DatabaseError(context={"operation": "record_event", "event_type": event_type})
        logger.info("Security event recorded: %s for user %s (success=%s)", event_type, user_id, success)
        return event

    async def log_event(
        self,
        db: AsyncSession,
        user_id: str,
        event_type: str,
        client: ClientInfo,
        success: bool = True,
        event_data: Optional[Dict[str, Any]] = None,
    ) -> List[SecurityEvent]:
        """
        Record an event; for a successful login also record what the history
        checks find.

        The checks run BEFORE the login itself is stored, otherwise every
        login would already count as a known device.

        Returns:
            [logged event, *derived events]
        """
        derived: List[Dict[str, Any]] = []
        if event_type == LOGIN_ATTEMPT and success:
            timestamp = datetime.now(timezone.utc).isoformat()
            if await self.check_new_device(db, user_id, client):
                derived.append({
                    "event_type": NEW_DEVICE_LOGIN,
                    "success": True,
                    "data": {"timestamp": timestamp},
                })
            reason = await self.check_suspicious_activity(db, user_id, client)
            if reason:
                derived.append({
                    "event_type": SUSPICIOUS_ACTIVITY,
                    "success": False,
                    "data": {"reason": reason, "timestamp": timestamp},
                })

        events = [
            await self.record_event(db, user_id, event_type, client, success, event_data)
        ]
        for item in derived:
            events.append(await self.record_event(
                db, user_id, item["event_type"], client, item["success"], item["data"],
            ))
        return events

    async def list_events(self, db: AsyncSession, user_id: str, limit: int = 20) -> List[SecurityEvent]:
        """The user's most recent events, newest first."""
        query = (
            select(SecurityEvent)
            .where(SecurityEvent.user_id == user_id)
            .order_by(SecurityEvent.created_at.desc())
            .limit(limit)
        )
        try:
            result = await db.execute(query)
        except SQLAlchemyError as e:
            logger.error("Failed to list security events for %s: %s", user_id, e)
            raise DatabaseError(context={"operation": "list_events"})
        return list(result.scalars().all())

    # ── History checks ────────────────────────────────────────────────────

    async def check_new_device(self, db: AsyncSession, user_id: str, client: ClientInfo) -> bool:
        """True when no earlier successful login used this IP + user agent."""
        query = (
            select(SecurityEvent.id)
            .where(
                SecurityEvent.user_id == user_id,
                SecurityEvent.event_type == LOGIN_ATTEMPT,
                SecurityEvent.success.is_(True),
                SecurityEvent.ip_address == client.ip_address,
                SecurityEvent.user_agent == client.user_agent,
            )
            .limit(1)
        )
        try:
            result = await db.execute(query)
        except SQLAlchemyError as e:
            # A failing check must not block the login log itself
            logger.error("Error checking new device for %s: %s", user_id, e)
            return False
        return result.scalar_one_or_none() is None

    async def check_suspicious_activity(
        self,
        db: AsyncSession,
        user_id: str,
        client: ClientInfo,
        now: Optional[datetime] = None,
    ) -> Optional[str]:
        """Return a human-readable reason when the recent history looks abusive."""
        since = (now or datetime.now(timezone.utc)) - self.lookback
        try:
            failed = await db.execute(
                select(func.count(SecurityEvent.id)).where(
                    SecurityEvent.user_id == user_id,
                    SecurityEvent.event_type == LOGIN_ATTEMPT,
                    SecurityEvent.success.is_(False),
                    SecurityEvent.created_at >= since,
                )
            )
            if (failed.scalar() or 0) >= self.failed_login_threshold:
                return "Multiple failed login attempts in short time period"

            # The current login's IP counts too
            ips = await db.execute(
                select(SecurityEvent.ip_address).distinct().where(
                    SecurityEvent.user_id == user_id,
                    SecurityEvent.event_type == LOGIN_ATTEMPT,
                    SecurityEvent.success.is_(True),
                    SecurityEvent.created_at >= since,
                )
            )
            unique_ips = set(ips.scalars().all()) | {client.ip_address}
            if len(unique_ips) >= self.distinct_ip_threshold:
                return "Logins from multiple IP addresses in short time period"
        except SQLAlchemyError as e:
            logger.error("Error checking suspicious activity for %s: %s", user_id, e)
            return None

        agent = client.user_agent.lower()
        if any(marker in agent for marker in AUTOMATION_MARKERS):
            return "Login attempt from automated tool or bot"
        return None

