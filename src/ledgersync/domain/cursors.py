"""Durable per-stream cursors.

A cursor only moves forward, and only through a compare-and-set against the
token its caller started from. No rewind operation exists; a bad fact is
corrected by a later compensating fact.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from ledgersync.domain.errors import StaleAdvance
from ledgersync.domain.model import utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from ledgersync.domain.model import EventCursor
    from ledgersync.domain.ports.persistence import CursorRepository

log = getLogger(__name__)


class CursorStore:
    """Cursor operations bound to the repository of an open unit of work."""

    def __init__(self, repository: CursorRepository) -> None:
        self._repository = repository

    def get(self, stream: str) -> str | None:
        cursor = self._repository.get(stream)
        return cursor.token if cursor is not None else None

    def load(self, stream: str) -> EventCursor | None:
        return self._repository.get(stream)

    def advance(
        self,
        stream: str,
        new_token: str,
        *,
        expected: str | None,
        now: datetime | None = None,
    ) -> None:
        """Move ``stream`` from ``expected`` to ``new_token`` or raise ``StaleAdvance``."""

        if new_token == expected:
            raise StaleAdvance(stream, expected=expected, actual=self.get(stream))
        if not self._repository.compare_and_set(
            stream,
            expected=expected,
            new_token=new_token,
            now=now or utcnow(),
        ):
            raise StaleAdvance(stream, expected=expected, actual=self.get(stream))
        log.debug("Advanced cursor %s to %s", stream, new_token)
