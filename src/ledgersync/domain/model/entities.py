"""Local projections and bookkeeping records owned by this service."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from .enums import FactKind, JobStatus, OrphanStatus, TargetKind, VerificationStatus

if TYPE_CHECKING:
    from .facts import LedgerFact


def new_id() -> UUID:
    return uuid4()


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(eq=False, kw_only=True)
class Entity:
    """Internal identity exists immediately in the domain."""

    id: UUID = field(default_factory=new_id)


@dataclass(eq=False, kw_only=True)
class EventCursor(Entity):
    """Last fully applied position of one ledger stream."""

    stream: str
    token: str | None = None
    sequence: int = 0
    updated_at: datetime | None = None


@dataclass(eq=False, kw_only=True)
class Dataset(Entity):
    """Projection of ``DatasetRegistered`` plus the latest verification decision."""

    ledger_id: str
    content_id: str
    owner_address: str | None = None
    title: str | None = None
    registered_at: datetime | None = None
    tx_digest: str | None = None

    verification_status: VerificationStatus = VerificationStatus.UNVERIFIED
    verification_score: float | None = None
    verification_job_id: str | None = None
    verified_at: datetime | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(eq=False, kw_only=True)
class License(Entity):
    """Projection of ``LicenseIssued``/``LicenseRevoked``; never deleted."""

    ledger_id: str
    dataset_cid: str
    licensee: str
    license_type: str
    issued_at: datetime
    expires_at: datetime | None = None
    dataset_owner: str | None = None
    tx_digest: str | None = None

    revoked: bool = False
    revoked_at: datetime | None = None
    revoked_by: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def perpetual(self) -> bool:
        return self.expires_at is None

    def is_active(self, at: datetime | None = None) -> bool:
        if self.revoked:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (at or utcnow())


@dataclass(eq=False, kw_only=True)
class OrphanedTransition(Entity):
    """A transition fact waiting for its target record to be created locally."""

    fact: LedgerFact
    stream: str
    target_kind: TargetKind
    target_id: str
    fact_kind: FactKind
    ledger_id: str
    cycles: int = 0
    status: OrphanStatus = OrphanStatus.PENDING
    first_seen_at: datetime = field(default_factory=utcnow)
    last_attempt_at: datetime | None = None


@dataclass(eq=False, kw_only=True)
class FactFailure(Entity):
    """Durable record of an event that failed normalization."""

    ledger_id: str
    stream: str
    position: str
    reason: str
    recorded_at: datetime = field(default_factory=utcnow)


@dataclass(eq=False, kw_only=True)
class VerificationJob(Entity):
    """Asynchronous verification request; read-only once terminal."""

    user_id: str
    input_ref: str
    input: dict[str, Any] = field(default_factory=dict[str, Any])
    status: JobStatus = JobStatus.PENDING
    result: dict[str, Any] | None = None
    error: str | None = None
    claim_token: UUID | None = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    # Set once the licensing fact of a completed job is in the projection.
    fact_folded_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal
