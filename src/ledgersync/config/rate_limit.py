"""Per-principal request limits."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_int


@dataclass(frozen=True, slots=True)
class LimitClass:
    """A named budget of ``max_requests`` per fixed window of ``window_seconds``."""

    name: str
    max_requests: int
    window_seconds: float = 60.0


INGEST_TRIGGER = LimitClass(name="ingest_trigger", max_requests=10)
AUTHENTICATED_READ = LimitClass(name="authenticated_read", max_requests=60)


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    ingest_trigger: LimitClass = INGEST_TRIGGER
    authenticated_read: LimitClass = AUTHENTICATED_READ


def get_rate_limit_config() -> RateLimitConfig:
    return RateLimitConfig(
        ingest_trigger=LimitClass(
            name=INGEST_TRIGGER.name,
            max_requests=env_int(
                "LEDGERSYNC_INGEST_LIMIT_PER_MINUTE", INGEST_TRIGGER.max_requests, minimum=1
            ),
        ),
        authenticated_read=LimitClass(
            name=AUTHENTICATED_READ.name,
            max_requests=env_int(
                "LEDGERSYNC_READ_LIMIT_PER_MINUTE", AUTHENTICATED_READ.max_requests, minimum=1
            ),
        ),
    )
