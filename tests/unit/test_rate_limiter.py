"""Tests for repo_planner/engine/rate_limiter.py."""

import pytest

from repo_planner.engine.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    multi_plan_creation_key,
    plan_creation_key,
)
from repo_planner.exceptions import RateLimitExceededError


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(InMemoryRateLimitStore(), window_seconds=60, clock=clock)


class TestKeys:
    def test_plan_creation_key(self):
        assert plan_creation_key("acme", "api") == "plan-creation-acme-api"

    def test_multi_plan_creation_key(self):
        assert multi_plan_creation_key("acme", "api") == "multi-plan-creation-acme-api"


class TestRateLimiter:
    """Sliding-window behavior."""

    def test_allows_up_to_limit(self, limiter):
        """Three runs fit into a window of three, the fourth is denied."""
        results = [limiter.allow("k", 3) for _ in range(4)]

        assert results == [True, True, True, False]

    def test_denied_call_is_not_recorded(self, limiter):
        """A denied run must not extend the window."""
        for _ in range(3):
            limiter.allow("k", 3)
        limiter.allow("k", 3)

        assert len(limiter.store.get("k")) == 3

    def test_window_slides(self, limiter, clock):
        """Timestamps older than the window no longer count."""
        for _ in range(3):
            limiter.allow("k", 3)
        clock.advance(30)
        assert limiter.allow("k", 3) is False

        clock.advance(31)
        assert limiter.allow("k", 3) is True

    def test_keys_are_independent(self, limiter):
        limiter.allow("a", 1)

        assert limiter.allow("a", 1) is False
        assert limiter.allow("b", 1) is True

    def test_check_raises_with_details(self, limiter):
        """check() raises when the window is full."""
        limiter.check("plan-creation-acme-api", 1)

        with pytest.raises(RateLimitExceededError) as exc_info:
            limiter.check("plan-creation-acme-api", 1)

        assert exc_info.value.key == "plan-creation-acme-api"
        assert exc_info.value.limit == 1
        assert exc_info.value.window_seconds == 60
        assert "at most 1 runs per 60 seconds" in exc_info.value.message

    def test_shared_store(self, clock):
        """Two limiters over one store see each other's runs."""
        store = InMemoryRateLimitStore()
        first = RateLimiter(store, window_seconds=60, clock=clock)
        second = RateLimiter(store, window_seconds=60, clock=clock)

        first.allow("k", 2)
        second.allow("k", 2)

        assert first.allow("k", 2) is False


class TestInMemoryRateLimitStore:
    def test_get_returns_copy(self):
        store = InMemoryRateLimitStore()
        store.set("k", [1.0])

        store.get("k").append(2.0)

        assert store.get("k") == [1.0]

    def test_empty_list_removes_key(self):
        store = InMemoryRateLimitStore()
        store.set("k", [1.0])
        store.set("k", [])

        assert store.get("k") == []
        assert "k" not in store._data

    def test_clear(self):
        store = InMemoryRateLimitStore()
        store.set("k", [1.0])
        store.clear()

        assert store.get("k") == []
