"""
Sliding-window rate limiting for pipeline runs.

Each key (for example ``plan-creation-acme-api``) keeps an ordered list of
recent run timestamps. A run is allowed while fewer than ``limit`` timestamps
fall inside the trailing window.

The timestamp store is injected. ``InMemoryRateLimitStore`` is only correct
within one long-lived process; a multi-instance deployment passes a store
backed by shared storage instead.
"""

import time
from collections.abc import Callable
from typing import Protocol

import structlog

from repo_planner.exceptions import RateLimitExceededError

log = structlog.get_logger(__name__)


class RateLimitStore(Protocol):
    """Storage of per-key timestamp lists."""

    def get(self, key: str) -> list[float]:
        """Return timestamps recorded for ``key``, oldest first."""
        ...

    def set(self, key: str, timestamps: list[float]) -> None:
        """Replace the timestamps recorded for ``key``."""
        ...


class InMemoryRateLimitStore:
    """Process-local store."""

    def __init__(self) -> None:
        self._data: dict[str, list[float]] = {}

    def get(self, key: str) -> list[float]:
        return list(self._data.get(key, []))

    def set(self, key: str, timestamps: list[float]) -> None:
        if timestamps:
            self._data[key] = list(timestamps)
        else:
            self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()


def plan_creation_key(owner: str, repo: str) -> str:
    return f"plan-creation-{owner}-{repo}"


def multi_plan_creation_key(owner: str, repo: str) -> str:
    return f"multi-plan-creation-{owner}-{repo}"


class RateLimiter:
    """Sliding-window limiter over an injected store.

    Example:
        >>> limiter = RateLimiter(InMemoryRateLimitStore(), window_seconds=60)
        >>> limiter.allow("plan-creation-acme-api", 3)
        True
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.window_seconds = window_seconds
        self.clock = clock

    def allow(self, key: str, limit_per_window: int) -> bool:
        """Record a run for ``key`` if the window has room.

        Args:
            key: Rate-limit key
            limit_per_window: Runs allowed inside the trailing window

        Returns:
            True if the run is allowed (and recorded), False otherwise
        """
        now = self.clock()
        cutoff = now - self.window_seconds
        recent = [ts for ts in self.store.get(key) if ts > cutoff]

        if len(recent) >= limit_per_window:
            self.store.set(key, recent)
            log.warning("rate_limit_denied", key=key, limit=limit_per_window, recent=len(recent))
            return False

        recent.append(now)
        self.store.set(key, recent)
        return True

    def check(self, key: str, limit_per_window: int) -> None:
        """Like ``allow`` but raises when denied.

        Raises:
            RateLimitExceededError: If the window is full
        """
        if not self.allow(key, limit_per_window):
            raise RateLimitExceededError(key, limit_per_window, self.window_seconds)
