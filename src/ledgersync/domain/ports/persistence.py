"""Ports for persisting projections, cursors and jobs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from ledgersync.domain.model import (
        Dataset,
        DatasetVerified,
        EventCursor,
        FactFailure,
        JobStatus,
        License,
        OrphanedTransition,
        OrphanStatus,
        TargetKind,
        VerificationJob,
    )


@runtime_checkable
class CursorRepository(Protocol):
    """Durable per-stream cursors with compare-and-set advancement."""

    def get(self, stream: str) -> EventCursor | None: ...

    def compare_and_set(
        self,
        stream: str,
        *,
        expected: str | None,
        new_token: str,
        now: datetime,
    ) -> bool: ...


@runtime_checkable
class DatasetRepository(Protocol):
    def get_by_ledger_id(self, ledger_id: str) -> Dataset | None: ...

    def get_by_content_id(self, content_id: str) -> Dataset | None: ...

    def insert_if_absent(self, dataset: Dataset) -> bool: ...

    def record_verification(self, fact: DatasetVerified, *, now: datetime) -> bool: ...


@runtime_checkable
class LicenseRepository(Protocol):
    def get_by_ledger_id(self, ledger_id: str) -> License | None: ...

    def insert_if_absent(self, license_: License) -> bool: ...

    def mark_revoked(
        self,
        ledger_id: str,
        *,
        revoked_at: datetime | None,
        revoked_by: str | None,
        now: datetime,
    ) -> bool: ...

    def list_for_dataset(self, dataset_cid: str) -> Sequence[License]: ...

    def list_for_licensee(self, licensee: str) -> Sequence[License]: ...

    def has_active(self, dataset_cid: str, licensee: str, *, at: datetime) -> bool: ...


@runtime_checkable
class OrphanRepository(Protocol):
    def add(self, orphan: OrphanedTransition) -> None: ...

    def pending_for_stream(self, stream: str) -> Sequence[OrphanedTransition]: ...

    def for_target(
        self, target_kind: TargetKind, target_id: str
    ) -> Sequence[OrphanedTransition]: ...

    def contains(self, stream: str, ledger_id: str) -> bool: ...

    def remove(self, orphan: OrphanedTransition) -> None: ...

    def list(self, *, status: OrphanStatus | None = None) -> Sequence[OrphanedTransition]: ...


@runtime_checkable
class FactFailureRepository(Protocol):
    def record(self, failure: FactFailure) -> bool: ...

    def list(self, *, stream: str | None = None) -> Sequence[FactFailure]: ...


@runtime_checkable
class JobRepository(Protocol):
    """Job store whose status changes are all compare-and-set."""

    def add(self, job: VerificationJob) -> None: ...

    def get(self, job_id: UUID) -> VerificationJob | None: ...

    def claim_next(self, *, token: UUID, now: datetime) -> VerificationJob | None: ...

    def finish(
        self,
        job_id: UUID,
        *,
        status: JobStatus,
        result: dict[str, Any] | None,
        error: str | None,
        now: datetime,
    ) -> bool: ...

    def mark_folded(self, job_id: UUID, *, now: datetime) -> bool: ...

    def unfolded(self, *, limit: int) -> Sequence[VerificationJob]: ...

    def fail_running_since(self, cutoff: datetime, *, error: str, now: datetime) -> int: ...

    def purge_finished_before(self, cutoff: datetime) -> int: ...
