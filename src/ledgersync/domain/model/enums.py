"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class FactKind(StrEnum):
    """Discriminator of normalized facts; values match the Move event struct names."""

    DATASET_REGISTERED = "DatasetRegistered"
    LICENSE_ISSUED = "LicenseIssued"
    LICENSE_REVOKED = "LicenseRevoked"

    # Local facts never come from the ledger.
    DATASET_VERIFIED = "DatasetVerified"

    UNRECOGNIZED = "Unrecognized"

    @property
    def is_creation(self) -> bool:
        return self in {FactKind.DATASET_REGISTERED, FactKind.LICENSE_ISSUED}

    @property
    def is_transition(self) -> bool:
        return self in {FactKind.LICENSE_REVOKED, FactKind.DATASET_VERIFIED}


LEDGER_FACT_KINDS: tuple[FactKind, ...] = (
    FactKind.DATASET_REGISTERED,
    FactKind.LICENSE_ISSUED,
    FactKind.LICENSE_REVOKED,
)


class TargetKind(StrEnum):
    """Kind of local record a transition fact points at."""

    DATASET = "dataset"
    LICENSE = "license"


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


class OrphanStatus(StrEnum):
    PENDING = "pending"
    EXPIRED = "expired"


class VerificationStatus(StrEnum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"
