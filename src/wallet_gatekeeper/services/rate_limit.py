"""Per-client request budgets for the gatekeeper.

Each client key gets a fixed number of points per window. Exhausting the
budget rejects the request and blocks the key for a fixed period, even if the
window would have reset sooner. State lives in process memory, so every
server instance enforces its own budget.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from threading import Lock
from typing import Final, Protocol

from wallet_gatekeeper.core.errors import RateLimitMeta
from wallet_gatekeeper.core.settings import Settings, settings

logger = logging.getLogger(__name__)

ANONYMOUS_CLIENT_KEY: Final[str] = "anonymous"

Clock = Callable[[], float]


def client_key_from_headers(headers: Mapping[str, str]) -> str:
    """Derive the rate-limit bucket for a request from its forwarded-address headers."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return ANONYMOUS_CLIENT_KEY


@dataclass(frozen=True)
class RateLimitPolicy:
    points: int = 100
    duration_seconds: float = 60.0
    block_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.points <= 0 or self.duration_seconds <= 0:
            raise ValueError("points and duration_seconds must be positive")
        if self.block_seconds < 0:
            raise ValueError("block_seconds must not be negative")

    @classmethod
    def from_settings(cls, config: Settings = settings) -> RateLimitPolicy:
        return cls(
            points=config.rate_limit_points,
            duration_seconds=float(config.rate_limit_duration_seconds),
            block_seconds=float(config.rate_limit_block_seconds),
        )


@dataclass
class RateWindowState:
    points_consumed: int
    window_started_at: float
    blocked_until: float | None = None

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def block_elapsed(self, now: float) -> bool:
        return self.blocked_until is not None and now >= self.blocked_until

    def is_expired(self, now: float, duration: float) -> bool:
        """True once both the window and any block are over; safe to collect."""
        return now >= self.window_started_at + duration and not self.is_blocked(now)


@dataclass(frozen=True)
class RateLimitResult:
    admitted: bool
    remaining: int
    reset_seconds: int

    @property
    def meta(self) -> RateLimitMeta:
        return RateLimitMeta(remaining=self.remaining, reset_seconds=self.reset_seconds)


class RateLimitStore(Protocol):
    """Storage for window state with an atomic consume step."""

    def consume(self, key: str, policy: RateLimitPolicy, now: float) -> RateLimitResult: ...

    def purge_expired(self, policy: RateLimitPolicy, now: float) -> int: ...


def _ceil_seconds(delta: float) -> int:
    return max(0, math.ceil(delta))


class MemoryRateLimitStore:
    """In-process store; check-and-increment runs under a single lock."""

    def __init__(self) -> None:
        self._states: dict[str, RateWindowState] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def get(self, key: str) -> RateWindowState | None:
        with self._lock:
            return self._states.get(key)

    def consume(self, key: str, policy: RateLimitPolicy, now: float) -> RateLimitResult:
        with self._lock:
            state = self._states.get(key)

            if state is not None and state.blocked_until is not None and now < state.blocked_until:
                return RateLimitResult(False, 0, _ceil_seconds(state.blocked_until - now))

            # A finished block starts a fresh window even if the old one is still open.
            if (
                state is None
                or state.is_expired(now, policy.duration_seconds)
                or state.block_elapsed(now)
            ):
                state = RateWindowState(points_consumed=0, window_started_at=now)
                self._states[key] = state

            window_ends_at = state.window_started_at + policy.duration_seconds
            if state.points_consumed < policy.points:
                state.points_consumed += 1
                return RateLimitResult(
                    True,
                    policy.points - state.points_consumed,
                    _ceil_seconds(window_ends_at - now),
                )

            if policy.block_seconds > 0:
                state.blocked_until = now + policy.block_seconds
                return RateLimitResult(False, 0, _ceil_seconds(policy.block_seconds))
            return RateLimitResult(False, 0, _ceil_seconds(window_ends_at - now))

    def purge_expired(self, policy: RateLimitPolicy, now: float) -> int:
        with self._lock:
            expired = [
                key
                for key, state in self._states.items()
                if state.is_expired(now, policy.duration_seconds)
            ]
            for key in expired:
                del self._states[key]
            return len(expired)


class RateLimiter:
    """Admit or reject requests per client key."""

    def __init__(
        self,
        policy: RateLimitPolicy | None = None,
        store: RateLimitStore | None = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.policy = policy or RateLimitPolicy()
        self._store = store if store is not None else MemoryRateLimitStore()
        self._clock = clock
        self._last_sweep = clock()

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def consume(self, key: str) -> RateLimitResult:
        """Spend one point for ``key``. Store failures reject the request."""
        key = key or ANONYMOUS_CLIENT_KEY
        now = self._clock()
        try:
            result = self._store.consume(key, self.policy, now)
        except Exception:
            logger.exception("Rate limit store failed for key %s; rejecting request", key)
            return RateLimitResult(False, 0, _ceil_seconds(self.policy.block_seconds))

        if not result.admitted:
            logger.info("Rate limit exceeded for key %s (reset in %ss)", key, result.reset_seconds)

        self._maybe_sweep(now)
        return result

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self.policy.duration_seconds:
            return
        self._last_sweep = now
        try:
            purged = self._store.purge_expired(self.policy, now)
        except Exception:
            logger.exception("Rate limit sweep failed")
            return
        if purged:
            logger.debug("Purged %d expired rate-limit windows", purged)


class _RateLimiterHolder:
    """Process-wide limiter with idempotent initialization."""

    def __init__(self) -> None:
        self._limiter: RateLimiter | None = None
        self._lock = Lock()

    def ensure_initialized(self, factory: Callable[[], RateLimiter] | None = None) -> RateLimiter:
        if self._limiter is None:
            with self._lock:
                if self._limiter is None:
                    self._limiter = (factory or _default_limiter)()
        return self._limiter

    def reset(self) -> None:
        with self._lock:
            self._limiter = None


def _default_limiter() -> RateLimiter:
    return RateLimiter(RateLimitPolicy.from_settings())


_HOLDER = _RateLimiterHolder()


def get_rate_limiter() -> RateLimiter:
    """Return the process-wide rate limiter, creating it on first use."""
    return _HOLDER.ensure_initialized()


def reset_rate_limiter() -> None:
    """Drop the process-wide limiter so the next call starts from empty state."""
    _HOLDER.reset()
