"""Ports for reading events from the external ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ledgersync.domain.model import RawEvent


@dataclass(slots=True)
class FetchedBatch:
    """Ordered slice of one stream, strictly after the requested token."""

    events: list[RawEvent] = field(default_factory=list["RawEvent"])
    end_of_stream: bool = True

    @property
    def last_position(self) -> str | None:
        return self.events[-1].position if self.events else None


@runtime_checkable
class LedgerEventFetcher(Protocol):
    """Pure read of ascending events for one stream.

    Implementations raise ``TransientFetchError`` for retryable upstream trouble
    and ``PermanentFetchError`` when the stream cannot be served at all.
    """

    def __call__(self, stream: str, from_token: str | None, max_batch: int) -> FetchedBatch: ...


__all__ = ["FetchedBatch", "LedgerEventFetcher"]
