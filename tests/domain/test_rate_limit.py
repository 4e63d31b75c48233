from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from ledgersync.config.rate_limit import AUTHENTICATED_READ, INGEST_TRIGGER, LimitClass
from ledgersync.domain.errors import RateLimited
from ledgersync.domain.rate_limit import RateLimiter


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_the_limit_then_raises_with_retry_after() -> None:
    clock = FakeMonotonic()
    limiter = RateLimiter(clock=clock)
    for _ in range(INGEST_TRIGGER.max_requests):
        limiter.check("user-1", INGEST_TRIGGER)
    clock.now += 15

    with pytest.raises(RateLimited) as excinfo:
        limiter.check("user-1", INGEST_TRIGGER)

    assert excinfo.value.retry_after == pytest.approx(45.0)
    assert "Try again in 45 seconds" in str(excinfo.value)
    assert limiter.remaining("user-1", INGEST_TRIGGER) == 0


def test_rejected_requests_do_not_count() -> None:
    clock = FakeMonotonic()
    limit = LimitClass(name="tiny", max_requests=1, window_seconds=10)
    limiter = RateLimiter(clock=clock)
    limiter.check("user-1", limit)
    for _ in range(5):
        with pytest.raises(RateLimited):
            limiter.check("user-1", limit)

    clock.now += 10

    limiter.check("user-1", limit)
    assert limiter.remaining("user-1", limit) == 0


def test_limits_are_separate_per_principal_and_class() -> None:
    limiter = RateLimiter(clock=FakeMonotonic())
    limit = LimitClass(name="tiny", max_requests=1)

    limiter.check("user-1", limit)
    limiter.check("user-2", limit)
    limiter.check("user-1", AUTHENTICATED_READ)

    assert limiter.remaining("user-1", AUTHENTICATED_READ) == AUTHENTICATED_READ.max_requests - 1
    assert limiter.remaining("user-3", limit) == 1


def test_prune_drops_only_ended_windows() -> None:
    clock = FakeMonotonic()
    limiter = RateLimiter(clock=clock)
    limiter.check("user-1", LimitClass(name="short", max_requests=5, window_seconds=10))
    limiter.check("user-1", LimitClass(name="long", max_requests=5, window_seconds=600))

    clock.now += 60

    assert limiter.prune() == 1
    assert len(limiter) == 1


def test_check_prunes_periodically() -> None:
    clock = FakeMonotonic()
    limiter = RateLimiter(clock=clock, prune_interval_seconds=120)
    limiter.check("user-1", INGEST_TRIGGER)

    clock.now += 121
    limiter.check("user-2", INGEST_TRIGGER)

    assert len(limiter) == 1


def test_concurrent_checks_never_exceed_the_budget() -> None:
    limiter = RateLimiter(clock=FakeMonotonic())
    limit = LimitClass(name="burst", max_requests=25)

    def attempt(_: int) -> bool:
        try:
            limiter.check("user-1", limit)
        except RateLimited:
            return False
        return True

    with ThreadPoolExecutor(max_workers=8) as pool:
        allowed = sum(pool.map(attempt, range(100)))

    assert allowed == 25
