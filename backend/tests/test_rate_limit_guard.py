"""
LudoLoop Backend — Rate-Limit Guard Unit Tests
================================================

What we test:
    ✅ trip() opens a 60s window; check_limited() clears it lazily afterwards
    ✅ A second trip() inside the window does not extend it
    ✅ Concurrent trip() calls from many threads open exactly one window
    ✅ Cooldown callbacks fire once, in order, on the first check or guarded call after expiry
    ✅ run_guarded(): fallback while tripped, exactly one call while open
    ✅ 429-style failures trip the guard; other failures propagate untouched
"""

import itertools
import logging
import threading

import pytest

from ludoloop.exceptions import BackendError, RateLimitError
from ludoloop.services.rate_limit_guard import RateLimitGuard, is_rate_limit_error


class TestCooldownWindow:

    def test_open_by_default(self, guard):
        assert guard.check_limited() is False
        assert guard.state == RateLimitGuard.OPEN
        assert guard.retry_after() == 0

    def test_trip_limits_for_the_whole_window(self, guard, fake_clock):
        guard.trip()
        assert guard.check_limited() is True

        fake_clock.advance(59)
        assert guard.check_limited() is True
        assert guard.retry_after() == 1

        fake_clock.advance(1)
        assert guard.check_limited() is False
        assert guard.state == RateLimitGuard.OPEN

    def test_double_trip_does_not_extend_window(self, guard, fake_clock):
        guard.trip()
        reset_at = guard.reset_timestamp

        fake_clock.advance(30)
        guard.trip()
        assert guard.reset_timestamp == reset_at

        fake_clock.advance(30)
        assert guard.check_limited() is False

    def test_concurrent_trips_open_a_single_window(self, caplog):
        ticks = itertools.count(1000)
        guard = RateLimitGuard(cooldown_seconds=60, clock=lambda: float(next(ticks)))
        barrier = threading.Barrier(8)
        reset_times = []

        def trip():
            barrier.wait()
            guard.trip()
            reset_times.append(guard.reset_timestamp)

        caplog.set_level(logging.WARNING, logger="ludoloop.services.rate_limit_guard")
        threads = [threading.Thread(target=trip) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(reset_times)) == 1
        tripped = [r for r in caplog.records if "short-circuiting" in r.getMessage()]
        assert len(tripped) == 1

    def test_can_trip_again_after_window(self, guard, fake_clock):
        guard.trip()
        fake_clock.advance(60)
        assert guard.check_limited() is False

        guard.trip()
        assert guard.check_limited() is True
        assert guard.reset_timestamp == fake_clock.now + 60


class TestCooldownCallbacks:

    def test_callback_runs_immediately_when_open(self, guard):
        calls = []
        guard.on_cooldown_end(lambda: calls.append("now"))
        assert calls == ["now"]

    def test_callbacks_fire_once_in_registration_order(self, guard, fake_clock):
        calls = []
        guard.trip()
        guard.on_cooldown_end(lambda: calls.append("first"))
        guard.on_cooldown_end(lambda: calls.append("second"))
        assert calls == []

        fake_clock.advance(61)
        guard.check_limited()
        guard.check_limited()
        assert calls == ["first", "second"]

    def test_failing_callback_does_not_starve_others(self, guard, fake_clock):
        calls = []

        def broken():
            raise RuntimeError("subscriber bug")

        guard.trip()
        guard.on_cooldown_end(broken)
        guard.on_cooldown_end(lambda: calls.append("ran"))

        fake_clock.advance(61)
        assert guard.check_limited() is False
        assert calls == ["ran"]

    def test_callback_may_reenter_guard(self, guard, fake_clock):
        """Callbacks run outside the lock, so calling back in must not deadlock."""
        observed = []
        guard.trip()
        guard.on_cooldown_end(lambda: observed.append(guard.check_limited()))

        fake_clock.advance(61)
        guard.check_limited()
        assert observed == [False]


class TestRunGuarded:

    @pytest.mark.asyncio
    async def test_calls_operation_once_while_open(self, guard):
        calls = []

        async def operation():
            calls.append(1)
            return "fresh"

        assert await guard.run_guarded(operation, fallback="cached") == "fresh"

    @pytest.mark.asyncio
    async def test_first_guarded_call_after_expiry_fires_callbacks(self, guard, fake_clock):
        calls = []

        async def operation():
            calls.append("operation")
            return "rows"

        guard.trip()
        guard.on_cooldown_end(lambda: calls.append("first"))
        guard.on_cooldown_end(lambda: calls.append("second"))

        fake_clock.advance(60)
        assert await guard.run_guarded(operation) == "rows"
        assert await guard.run_guarded(operation) == "rows"

        assert calls == ["first", "second", "operation", "operation"]
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_returns_fallback_without_calling_while_tripped(self, guard):
        calls = []

        async def operation():
            calls.append(1)
            return "fresh"

        guard.trip()
        assert await guard.run_guarded(operation, fallback="cached") == "cached"
        assert calls == []

    @pytest.mark.asyncio
    async def test_none_is_a_valid_fallback(self, guard):
        async def operation():
            return "fresh"

        guard.trip()
        assert await guard.run_guarded(operation, fallback=None) is None

    @pytest.mark.asyncio
    async def test_raises_rate_limit_error_without_fallback(self, guard, fake_clock):
        async def operation():
            return "fresh"

        guard.trip()
        fake_clock.advance(15)
        with pytest.raises(RateLimitError) as exc_info:
            await guard.run_guarded(operation)
        assert exc_info.value.retry_after == 45

    @pytest.mark.asyncio
    async def test_rate_limit_failure_trips_and_returns_fallback(self, guard):
        async def operation():
            raise BackendError("429 Too Many Requests", status_code=429)

        assert await guard.run_guarded(operation, fallback="cached") == "cached"
        assert guard.check_limited() is True

    @pytest.mark.asyncio
    async def test_rate_limit_failure_without_fallback_reraises_original(self, guard):
        async def operation():
            raise BackendError("429 Too Many Requests", status_code=429)

        with pytest.raises(BackendError):
            await guard.run_guarded(operation)
        assert guard.check_limited() is True

    @pytest.mark.asyncio
    async def test_other_failures_propagate_without_tripping(self, guard):
        async def operation():
            raise BackendError("500 Internal Server Error", status_code=500)

        with pytest.raises(BackendError):
            await guard.run_guarded(operation, fallback="cached")
        assert guard.check_limited() is False

    @pytest.mark.asyncio
    async def test_operations_resume_after_cooldown(self, guard, fake_clock):
        async def operation():
            return "fresh"

        guard.trip()
        fake_clock.advance(60)
        assert await guard.run_guarded(operation, fallback="cached") == "fresh"


class TestRateLimitSignatures:

    @pytest.mark.parametrize("message", [
        "429 Too Many Requests",
        "too many requests, slow down",
        "Rate limit exceeded",
        "email rate_limit hit",
        "HTTP 429",
    ])
    def test_recognised(self, message):
        assert is_rate_limit_error(Exception(message)) is True

    @pytest.mark.parametrize("message", [
        "Unexpected token < in JSON at position 0",
        "500 Internal Server Error",
        "connection reset by peer",
        "row 14290 not found",
    ])
    def test_not_recognised(self, message):
        assert is_rate_limit_error(Exception(message)) is False
