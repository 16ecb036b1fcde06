"""Per-target sliding-window rate limiter.

One :class:`RateLimiterState` per target id, shared by every job that
scrapes that target.  ``can_proceed`` both checks and *reserves* a slot
under the state's lock, so two jobs racing on the same target cannot
both take the last request of a window.  The caller then either
``record_request`` (the fetch happened) or ``release`` (it did not).

Pacing between pages is separate: :meth:`RateLimiter.wait` is a plain
cooperative sleep and enforces nothing by itself.
"""

from __future__ import annotations

import asyncio
import threading
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from jobharvest.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from jobharvest.targets.models import RateLimitPolicy

WINDOW_SECONDS = 60.0


@dataclass
class RateLimiterState:
    """Request accounting for one target in the current minute window."""

    target_id: str
    window_start: float
    last_request: float
    request_count: int = 0
    reserved: int = 0
    blocked: bool = False
    block_until: float | None = None
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def snapshot(self) -> RateLimiterState:
        """Copy without the lock, safe to hand to callers."""
        return replace(self, _lock=threading.Lock())


class RateLimiter:
    """Tracks request counts per target in one-minute windows.

    Usage::

        limiter = RateLimiter()
        if limiter.can_proceed("indeed", target.rate_limit):
            try:
                response = await fetcher.fetch(url, headers)
            except Exception:
                limiter.release("indeed")
                raise
            limiter.record_request("indeed")
        await limiter.wait(target.rate_limit.delay_between_requests)
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._states: dict[str, RateLimiterState] = {}
        self._states_lock = threading.Lock()

    def can_proceed(self, target_id: str, policy: RateLimitPolicy) -> bool:
        """Check the window and reserve a request slot if one is free."""
        state = self._state(target_id)
        with state._lock:
            now = self._clock()

            if now - state.window_start > WINDOW_SECONDS:
                state.request_count = 0
                state.window_start = now
                state.blocked = False
                state.block_until = None

            if state.blocked and state.block_until is not None and now < state.block_until:
                return False

            if state.request_count + state.reserved >= policy.requests_per_minute:
                state.blocked = True
                state.block_until = state.window_start + WINDOW_SECONDS
                logger.debug(
                    "Rate limit reached for %s (%d/min) — blocked for %.1fs",
                    target_id,
                    policy.requests_per_minute,
                    state.block_until - now,
                )
                return False

            state.reserved += 1
            return True

    def record_request(self, target_id: str) -> None:
        """Count a request that was actually made against the window."""
        state = self._state(target_id)
        with state._lock:
            if state.reserved > 0:
                state.reserved -= 1
            state.request_count += 1
            state.last_request = self._clock()

    def release(self, target_id: str) -> None:
        """Return a reserved slot that was never used."""
        state = self._states.get(target_id)
        if state is None:
            return
        with state._lock:
            if state.reserved > 0:
                state.reserved -= 1

    def retry_after(self, target_id: str) -> float:
        """Seconds until the current block lifts (0.0 if not blocked)."""
        state = self._states.get(target_id)
        if state is None:
            return 0.0
        with state._lock:
            if not state.blocked or state.block_until is None:
                return 0.0
            # Window resets only once now is strictly past its end
            remaining = (state.window_start + WINDOW_SECONDS) - self._clock()
            return max(0.0, remaining) + 0.001

    async def wait(self, seconds: float) -> None:
        """Suspend the calling task for *seconds*."""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        logger.debug("Pacing: sleeping %.2fs", seconds)
        await asyncio.sleep(seconds)

    def status(self, target_id: str) -> RateLimiterState | None:
        """Snapshot of the target's limiter state, or ``None`` if never used."""
        state = self._states.get(target_id)
        if state is None:
            return None
        with state._lock:
            return state.snapshot()

    def _state(self, target_id: str) -> RateLimiterState:
        with self._states_lock:
            state = self._states.get(target_id)
            if state is None:
                now = self._clock()
                state = RateLimiterState(
                    target_id=target_id,
                    window_start=now,
                    last_request=now,
                )
                self._states[target_id] = state
            return state
