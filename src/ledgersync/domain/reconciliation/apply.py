"""Apply one normalized fact to the local projection.

Creation facts are insert-if-absent keyed by ``ledger_id``; transition facts are
conditional updates that only report a change when the record actually moved.
Neither path ever raises for a duplicate, so re-delivery is always a no-op.
The applier never commits; transaction control belongs to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from ledgersync.domain.model import (
    Dataset,
    DatasetRegistered,
    DatasetVerified,
    License,
    LicenseIssued,
    LicenseRevoked,
    TargetKind,
    TargetRef,
    Unrecognized,
)

if TYPE_CHECKING:
    from datetime import datetime

    from ledgersync.domain.model import LedgerFact
    from ledgersync.domain.ports import LedgerRepositories

log = getLogger(__name__)


class ApplyOutcome(StrEnum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    TRANSITIONED = "transitioned"
    ALREADY_APPLIED = "already_applied"
    MISSING_TARGET = "missing_target"
    IGNORED = "ignored"

    @property
    def settled(self) -> bool:
        """Whether the fact needs no further attempts."""
        return self is not ApplyOutcome.MISSING_TARGET


def created_target(fact: LedgerFact) -> TargetRef | None:
    """Target reference that transitions use to find the record ``fact`` creates."""

    if isinstance(fact, DatasetRegistered) and fact.content_id:
        return TargetRef(TargetKind.DATASET, fact.content_id)
    if isinstance(fact, LicenseIssued):
        return TargetRef(TargetKind.LICENSE, fact.ledger_id)
    return None


@dataclass(slots=True)
class FactApplier:
    """Apply facts against the repositories of one open unit of work."""

    repositories: LedgerRepositories
    now: datetime

    def __call__(self, fact: LedgerFact) -> ApplyOutcome:
        if isinstance(fact, DatasetRegistered):
            return self._register_dataset(fact)
        if isinstance(fact, LicenseIssued):
            return self._issue_license(fact)
        if isinstance(fact, LicenseRevoked):
            return self._revoke_license(fact)
        if isinstance(fact, DatasetVerified):
            return self._record_verification(fact)
        if isinstance(fact, Unrecognized):
            log.info(
                "Ignoring unrecognized event %s at %s", fact.event_type, fact.position
            )
            return ApplyOutcome.IGNORED
        raise TypeError(f"Unsupported fact type: {type(fact).__name__}")

    def _register_dataset(self, fact: DatasetRegistered) -> ApplyOutcome:
        if not fact.content_id:
            raise ValueError(f"DatasetRegistered {fact.ledger_id} has no content identifier")
        dataset = Dataset(
            ledger_id=fact.ledger_id,
            content_id=fact.content_id,
            owner_address=fact.subject,
            title=fact.title,
            registered_at=fact.occurred_at,
            tx_digest=fact.tx_digest,
            created_at=self.now,
            updated_at=self.now,
        )
        if self.repositories.datasets.insert_if_absent(dataset):
            return ApplyOutcome.CREATED
        return ApplyOutcome.DUPLICATE

    def _issue_license(self, fact: LicenseIssued) -> ApplyOutcome:
        if not fact.content_id or not fact.subject:
            raise ValueError(f"LicenseIssued {fact.ledger_id} is missing dataset or licensee")
        license_ = License(
            ledger_id=fact.ledger_id,
            dataset_cid=fact.content_id,
            licensee=fact.subject,
            license_type=fact.license_type,
            issued_at=fact.issued_at,
            expires_at=fact.expires_at,
            dataset_owner=fact.dataset_owner,
            tx_digest=fact.tx_digest,
            created_at=self.now,
            updated_at=self.now,
        )
        if self.repositories.licenses.insert_if_absent(license_):
            return ApplyOutcome.CREATED
        return ApplyOutcome.DUPLICATE

    def _revoke_license(self, fact: LicenseRevoked) -> ApplyOutcome:
        licenses = self.repositories.licenses
        if licenses.mark_revoked(
            fact.ledger_id,
            revoked_at=fact.revoked_at or fact.occurred_at,
            revoked_by=fact.revoked_by or fact.subject,
            now=self.now,
        ):
            return ApplyOutcome.TRANSITIONED
        if licenses.get_by_ledger_id(fact.ledger_id) is None:
            return ApplyOutcome.MISSING_TARGET
        return ApplyOutcome.ALREADY_APPLIED

    def _record_verification(self, fact: DatasetVerified) -> ApplyOutcome:
        datasets = self.repositories.datasets
        if datasets.record_verification(fact, now=self.now):
            return ApplyOutcome.TRANSITIONED
        if datasets.get_by_content_id(fact.target.id) is None:
            return ApplyOutcome.MISSING_TARGET
        return ApplyOutcome.ALREADY_APPLIED
