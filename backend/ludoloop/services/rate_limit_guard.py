"""
LudoLoop Backend — Rate-Limit Guard
=====================================

What:  A process-wide cooperative circuit breaker around hosted backend calls.
Why:   When the data API starts answering "429 Too Many Requests", every further
       call from any request only deepens the throttling. The guard stops all
       guarded calls for a fixed cooldown window instead.
How:   A single shared state object ({is_limited, reset_timestamp, callbacks})
       protected by a mutex. Data-fetch call sites wrap their backend operation
       in run_guarded(); the middleware chain itself never consults the guard.
Who:   Created once per application in create_app() (app.state.rate_limit_guard)
       and injected into routes via ludoloop.dependencies.

State Machine:
    OPEN (calls pass through)
        → operation fails with a rate-limit signature → trip() → TRIPPED
    TRIPPED (calls short-circuited: fallback value or RateLimitError)
        → first check_limited()/run_guarded() with now >= reset_timestamp
        → OPEN, pending cooldown callbacks fire once in registration order

    There is no timer: the TRIPPED → OPEN transition happens lazily on the
    next check after the window elapses.

Invariants:
    - trip() never extends an active window (at most one trip per window).
    - Each cooldown callback runs exactly once. The list is drained under the
      same lock that clears the flag; callbacks run after the lock is released
      so a callback may safely call back into the guard.
"""

import logging
import re
import threading
import time
from typing import Any, Awaitable, Callable, List, Optional, Pattern

from ludoloop.exceptions import RateLimitError

logger = logging.getLogger(__name__)

# Error messages that mean "the backend is throttling us".
# JSON decode failures ("Unexpected token ...") propagate as ordinary errors.
RATE_LIMIT_SIGNATURES: Pattern[str] = re.compile(
    r"too many requests|\b429\b|rate[ _-]?limit",
    re.IGNORECASE,
)

# Sentinel for "no fallback given" (None is a legitimate fallback value)
_MISSING: Any = object()


def is_rate_limit_error(exc: BaseException) -> bool:
    """True when the exception message carries a known throttling signature."""
    return bool(RATE_LIMIT_SIGNATURES.search(str(exc)))


class RateLimitGuard:
    """
    Shared cooldown flag with one-shot continuations.

    Args:
        cooldown_seconds: Length of the TRIPPED window (default 60s)
        clock: Monotonic time source; injectable so tests can simulate time
    """

    OPEN = "open"
    TRIPPED = "tripped"

    def __init__(
        self,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._is_limited = False
        self._reset_timestamp = 0.0
        self._pending_callbacks: List[Callable[[], None]] = []

    # ── State inspection ──────────────────────────────────────────────────

    @property
    def state(self) -> str:
        return self.TRIPPED if self.check_limited() else self.OPEN

    @property
    def reset_timestamp(self) -> float:
        return self._reset_timestamp

    def retry_after(self) -> int:
        """Whole seconds until the window ends (0 when open)."""
        with self._lock:
            if not self._is_limited:
                return 0
            remaining = self._reset_timestamp - self._clock()
        return max(0, int(remaining + 0.999))

    # ── Core operations ───────────────────────────────────────────────────

    def check_limited(self) -> bool:
        """
        Return True while the cooldown window is active.

        The first call that observes an expired window clears the flag and
        fires every pending callback exactly once, in registration order.
        """
        with self._lock:
            if not self._is_limited:
                return False
            if self._clock() < self._reset_timestamp:
                return True
            # Window elapsed: TRIPPED → OPEN, take ownership of the callbacks
            self._is_limited = False
            callbacks = self._pending_callbacks
            self._pending_callbacks = []

        logger.info(
            "Rate-limit cooldown ended; resuming backend calls (%d waiting callbacks)",
            len(callbacks),
        )
        self._fire(callbacks)
        return False

    def trip(self) -> None:
        """Enter the cooldown window. No-op while already tripped."""
        with self._lock:
            if self._is_limited:
                return
            self._is_limited = True
            self._reset_timestamp = self._clock() + self.cooldown_seconds
        logger.warning(
            "Backend rate limit detected; short-circuiting backend calls for %.0fs",
            self.cooldown_seconds,
        )

    def on_cooldown_end(self, callback: Callable[[], None]) -> None:
        """
        Run `callback` once the guard is open again.

        Invoked immediately when the guard is open; otherwise queued for the
        check that observes the end of the window.
        """
        if not self.check_limited():
            self._fire([callback])
            return
        with self._lock:
            if self._is_limited:
                self._pending_callbacks.append(callback)
                return
        # The window closed between the check and the lock
        self._fire([callback])

    async def run_guarded(
        self,
        operation: Callable[[], Awaitable[Any]],
        fallback: Any = _MISSING,
    ) -> Any:
        """
        Run a backend operation unless the guard is tripped.

        Flow:
            1. Tripped → return `fallback` without calling the operation,
               or raise RateLimitError when no fallback was given
            2. Open → await operation() exactly once
            3. Operation failed with a throttling signature → trip(), then
               return `fallback`, or re-raise the original error
            4. Any other failure propagates unchanged

        Args:
            operation: Zero-argument callable returning an awaitable
            fallback: Value returned instead of the result while throttled.
                      Omit it to get an exception instead (None is a valid fallback).
        """
        if self.check_limited():
            if fallback is not _MISSING:
                logger.debug("Backend call short-circuited by rate-limit guard")
                return fallback
            raise RateLimitError(retry_after=self.retry_after())

        try:
            return await operation()
        except Exception as exc:
            if not is_rate_limit_error(exc):
                raise
            self.trip()
            if fallback is not _MISSING:
                return fallback
            raise

    # ── Internals ─────────────────────────────────────────────────────────

    @staticmethod
    def _fire(callbacks: List[Callable[[], None]]) -> None:
        for callback in callbacks:
            try:
                callback()
            except Exception:
                # One failing subscriber must not starve the others
                logger.exception("Rate-limit cooldown callback failed")

    def __repr__(self) -> str:
        return (
            f"<RateLimitGuard(limited={self._is_limited}, "
            f"reset_timestamp={self._reset_timestamp:.1f}, "
            f"pending={len(self._pending_callbacks)})>"
        )
