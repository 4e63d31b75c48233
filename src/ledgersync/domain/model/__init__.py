"""Domain model for the ledger projection and verification jobs."""

from __future__ import annotations

from .entities import (
    Dataset,
    Entity,
    EventCursor,
    FactFailure,
    License,
    OrphanedTransition,
    VerificationJob,
    new_id,
    utcnow,
)
from .enums import (
    LEDGER_FACT_KINDS,
    FactKind,
    JobStatus,
    OrphanStatus,
    TargetKind,
    VerificationStatus,
)
from .facts import (
    FACT_TYPES,
    DatasetRegistered,
    DatasetVerified,
    LedgerFact,
    LicenseIssued,
    LicenseRevoked,
    NormalizationFailure,
    RawEvent,
    TargetRef,
    Unrecognized,
)

__all__ = [
    "FACT_TYPES",
    "LEDGER_FACT_KINDS",
    "Dataset",
    "DatasetRegistered",
    "DatasetVerified",
    "Entity",
    "EventCursor",
    "FactFailure",
    "FactKind",
    "JobStatus",
    "LedgerFact",
    "License",
    "LicenseIssued",
    "LicenseRevoked",
    "NormalizationFailure",
    "OrphanStatus",
    "OrphanedTransition",
    "RawEvent",
    "TargetKind",
    "TargetRef",
    "Unrecognized",
    "VerificationJob",
    "VerificationStatus",
    "new_id",
    "utcnow",
]
