"""Error taxonomy shared by the sync pipeline, the job queue and the rate limiter."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .model import OrphanedTransition


class LedgerSyncError(RuntimeError):
    """Base class for errors raised by ledgersync."""


class FetchError(LedgerSyncError):
    """Reading events from the ledger failed."""

    def __init__(self, message: str, *, stream: str | None = None) -> None:
        super().__init__(message)
        self.stream = stream


class TransientFetchError(FetchError):
    """Upstream is temporarily unavailable; retry with backoff."""


class PermanentFetchError(FetchError):
    """The stream cannot be read at all; needs an operator."""


class StaleAdvance(LedgerSyncError):
    """A cursor advance lost a compare-and-set race or did not move forward."""

    def __init__(self, stream: str, *, expected: str | None, actual: str | None) -> None:
        super().__init__(
            f"Stale cursor advance on {stream!r}: expected {expected!r}, stored {actual!r}"
        )
        self.stream = stream
        self.expected = expected
        self.actual = actual


class OrphanedTransitionTimeout(LedgerSyncError):
    """A transition fact outlived the retry horizon without its target appearing."""

    def __init__(self, orphan: OrphanedTransition) -> None:
        super().__init__(
            f"{orphan.fact_kind} {orphan.ledger_id} on {orphan.stream!r} never found "
            f"{orphan.target_kind} {orphan.target_id} after {orphan.cycles} cycles"
        )
        self.orphan = orphan


class RateLimited(LedgerSyncError):
    """Caller exceeded its request budget; retry after ``retry_after`` seconds."""

    def __init__(self, principal: str, limit_name: str, *, retry_after: float) -> None:
        super().__init__(
            f"Too many requests for {limit_name}. Try again in {max(1, round(retry_after))} "
            "seconds."
        )
        self.principal = principal
        self.limit_name = limit_name
        self.retry_after = retry_after


class JobExecutionFailure(LedgerSyncError):
    """Verification logic failed; recorded on the job, never raised to the scheduler."""


class JobNotFoundError(LedgerSyncError):
    """No verification job exists with the requested id."""
