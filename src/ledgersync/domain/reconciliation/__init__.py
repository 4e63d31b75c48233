"""Reconciliation core: fold ledger facts into the local projection.

Flow per batch:
1) fetch raw events strictly after the stream cursor
2) normalize each event into a typed fact (or a recorded failure)
3) apply facts idempotently, holding transitions whose target is missing
4) advance the cursor in the same unit of work
"""

from __future__ import annotations

from .apply import ApplyOutcome, FactApplier, created_target
from .engine import LOCAL_STREAM, CycleResult, ReconciliationEngine
from .normalize import NormalizeEvent, move_struct_name
from .orphans import PendingTransitions

__all__ = [
    "LOCAL_STREAM",
    "ApplyOutcome",
    "CycleResult",
    "FactApplier",
    "NormalizeEvent",
    "PendingTransitions",
    "ReconciliationEngine",
    "created_target",
    "move_struct_name",
]
