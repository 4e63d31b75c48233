"""Raw ledger events and the typed facts they normalize into."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime  # noqa: TC003
from typing import TYPE_CHECKING, ClassVar

from .enums import FactKind, TargetKind, VerificationStatus

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True, kw_only=True)
class RawEvent:
    """One event as returned by the ledger read API, before validation."""

    stream: str
    position: str
    event_type: str
    payload: Mapping[str, object] = field(default_factory=dict[str, object])
    sender: str | None = None
    timestamp_ms: int | None = None
    tx_digest: str | None = None


@dataclass(frozen=True, slots=True)
class TargetRef:
    """Identity of the local record a transition fact mutates."""

    kind: TargetKind
    id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class LedgerFact:
    """Normalized fact; ``ledger_id`` is the idempotency key within its kind."""

    KIND: ClassVar[FactKind]

    ledger_id: str
    content_id: str | None = None
    subject: str | None = None
    occurred_at: datetime | None = None
    position: str | None = None
    tx_digest: str | None = None

    @property
    def kind(self) -> FactKind:
        return self.KIND

    @property
    def target(self) -> TargetRef | None:
        """Record a transition applies to; ``None`` for creation facts."""
        return None


@dataclass(frozen=True, slots=True, kw_only=True)
class DatasetRegistered(LedgerFact):
    KIND: ClassVar[FactKind] = FactKind.DATASET_REGISTERED

    title: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class LicenseIssued(LedgerFact):
    KIND: ClassVar[FactKind] = FactKind.LICENSE_ISSUED

    license_type: str
    issued_at: datetime
    expires_at: datetime | None = None
    dataset_owner: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class LicenseRevoked(LedgerFact):
    KIND: ClassVar[FactKind] = FactKind.LICENSE_REVOKED

    revoked_at: datetime | None = None
    revoked_by: str | None = None

    @property
    def target(self) -> TargetRef:
        return TargetRef(TargetKind.LICENSE, self.ledger_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class DatasetVerified(LedgerFact):
    """Licensing decision derived from a completed verification job.

    ``ledger_id`` is the job id and ``content_id`` the verified dataset.
    ``occurred_at`` is required: it orders verifications of the same dataset.
    """

    KIND: ClassVar[FactKind] = FactKind.DATASET_VERIFIED

    status: VerificationStatus
    verdict: str | None = None
    confidence: float | None = None
    quality_score: float | None = None

    def __post_init__(self) -> None:
        if self.occurred_at is None:
            raise ValueError(f"DatasetVerified {self.ledger_id} has no occurred_at")

    @property
    def verified_at(self) -> datetime:
        if self.occurred_at is None:
            raise ValueError(f"DatasetVerified {self.ledger_id} has no occurred_at")
        return self.occurred_at

    @property
    def target(self) -> TargetRef:
        if self.content_id is None:
            raise ValueError("DatasetVerified requires a content identifier")
        return TargetRef(TargetKind.DATASET, self.content_id)


@dataclass(frozen=True, slots=True, kw_only=True)
class Unrecognized(LedgerFact):
    """Well-formed event of a kind this service does not know (yet)."""

    KIND: ClassVar[FactKind] = FactKind.UNRECOGNIZED

    event_type: str


FACT_TYPES: dict[FactKind, type[LedgerFact]] = {
    FactKind.DATASET_REGISTERED: DatasetRegistered,
    FactKind.LICENSE_ISSUED: LicenseIssued,
    FactKind.LICENSE_REVOKED: LicenseRevoked,
    FactKind.DATASET_VERIFIED: DatasetVerified,
    FactKind.UNRECOGNIZED: Unrecognized,
}


@dataclass(frozen=True, slots=True, kw_only=True)
class NormalizationFailure:
    """A raw event that could not be turned into a fact.

    ``ledger_id`` falls back to the event position when the payload carries no
    readable identifier.
    """

    ledger_id: str
    stream: str
    position: str
    reason: str
