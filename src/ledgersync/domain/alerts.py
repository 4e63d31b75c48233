"""Operator alert sink.

Alerts are conditions that need a human: a stream that cannot be read or a
transition that never found its target. The default sink logs them at
``CRITICAL`` so they stand out from routine retries.
"""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger

from .errors import LedgerSyncError

log = getLogger(__name__)

type AlertSink = Callable[[LedgerSyncError], None]


def log_alert(error: LedgerSyncError) -> None:
    log.critical("ALERT %s: %s", type(error).__name__, error)


__all__ = ["AlertSink", "log_alert"]
