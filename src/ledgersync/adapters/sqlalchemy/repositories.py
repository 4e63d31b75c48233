"""Repository implementations backed by SQLAlchemy sessions.

Creation goes through dialect ``INSERT ... ON CONFLICT DO NOTHING`` and every
status change is a conditional ``UPDATE``; callers learn whether they won from
the affected row count instead of a read-then-write.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import and_, delete, exists, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite

from ledgersync.adapters.sqlalchemy.mappings import (
    dataset_table,
    event_cursor_table,
    fact_failure_table,
    license_table,
    orphaned_transition_table,
    verification_job_table,
)
from ledgersync.domain.model import (
    Dataset,
    EventCursor,
    FactFailure,
    JobStatus,
    License,
    OrphanedTransition,
    OrphanStatus,
    VerificationJob,
    new_id,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from sqlalchemy import Table
    from sqlalchemy.engine import CursorResult
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Executable

    from ledgersync.domain.model import DatasetVerified, TargetKind

_CLAIM_ATTEMPTS = 3


class UnsupportedDialectError(RuntimeError):
    """Raised when insert-if-absent is requested on a database without ON CONFLICT."""


def _row_values(entity: object, table: Table) -> dict[str, Any]:
    return {column.key: getattr(entity, column.key) for column in table.columns}


def _rowcount(session: Session, statement: Executable) -> int:
    result = cast("CursorResult[Any]", session.execute(statement))
    return result.rowcount


def insert_if_absent(session: Session, table: Table, values: dict[str, Any]) -> bool:
    """Insert ``values`` unless any unique constraint already holds them."""

    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        statement = sqlite.insert(table).values(**values).on_conflict_do_nothing()
    elif dialect == "postgresql":
        statement = postgresql.insert(table).values(**values).on_conflict_do_nothing()
    else:
        raise UnsupportedDialectError(f"insert-if-absent is not supported on {dialect}")
    return _rowcount(session, statement) == 1


class SqlAlchemyCursorRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, stream: str) -> EventCursor | None:
        stmt = (
            select(EventCursor)
            .where(event_cursor_table.c.stream == stream)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def compare_and_set(
        self,
        stream: str,
        *,
        expected: str | None,
        new_token: str,
        now: datetime,
    ) -> bool:
        table = event_cursor_table
        if expected is None and insert_if_absent(
            self.session,
            table,
            {"id": new_id(), "stream": stream, "token": new_token, "sequence": 1, "updated_at": now},
        ):
            return True
        token_matches = table.c.token.is_(None) if expected is None else table.c.token == expected
        stmt = (
            update(table)
            .where(table.c.stream == stream, token_matches)
            .values(token=new_token, sequence=table.c.sequence + 1, updated_at=now)
        )
        return _rowcount(self.session, stmt) == 1


class SqlAlchemyDatasetRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_ledger_id(self, ledger_id: str) -> Dataset | None:
        return self._one(dataset_table.c.ledger_id == ledger_id)

    def get_by_content_id(self, content_id: str) -> Dataset | None:
        return self._one(dataset_table.c.content_id == content_id)

    def insert_if_absent(self, dataset: Dataset) -> bool:
        return insert_if_absent(self.session, dataset_table, _row_values(dataset, dataset_table))

    def record_verification(self, fact: DatasetVerified, *, now: datetime) -> bool:
        """Apply ``fact`` unless the dataset holds it or a newer verification.

        Verifications are ordered by ``(occurred_at, job id)``, so re-delivering
        an older fact after a newer one is a no-op.
        """

        table = dataset_table
        at = fact.verified_at
        newer = or_(
            table.c.verified_at.is_(None),
            table.c.verified_at < at,
            and_(
                table.c.verified_at == at,
                or_(
                    table.c.verification_job_id.is_(None),
                    table.c.verification_job_id < fact.ledger_id,
                ),
            ),
        )
        stmt = (
            update(table)
            .where(table.c.content_id == fact.target.id, newer)
            .values(
                verification_status=fact.status,
                verification_score=fact.quality_score,
                verification_job_id=fact.ledger_id,
                verified_at=at,
                updated_at=now,
            )
        )
        return _rowcount(self.session, stmt) == 1

    def _one(self, condition: Any) -> Dataset | None:
        stmt = select(Dataset).where(condition).execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()


class SqlAlchemyLicenseRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_ledger_id(self, ledger_id: str) -> License | None:
        stmt = (
            select(License)
            .where(license_table.c.ledger_id == ledger_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def insert_if_absent(self, license_: License) -> bool:
        return insert_if_absent(self.session, license_table, _row_values(license_, license_table))

    def mark_revoked(
        self,
        ledger_id: str,
        *,
        revoked_at: datetime | None,
        revoked_by: str | None,
        now: datetime,
    ) -> bool:
        table = license_table
        stmt = (
            update(table)
            .where(table.c.ledger_id == ledger_id, table.c.revoked.is_(False))
            .values(revoked=True, revoked_at=revoked_at or now, revoked_by=revoked_by, updated_at=now)
        )
        return _rowcount(self.session, stmt) == 1

    def list_for_dataset(self, dataset_cid: str) -> Sequence[License]:
        return self._list(license_table.c.dataset_cid == dataset_cid)

    def list_for_licensee(self, licensee: str) -> Sequence[License]:
        return self._list(license_table.c.licensee == licensee)

    def has_active(self, dataset_cid: str, licensee: str, *, at: datetime) -> bool:
        table = license_table
        stmt = select(
            exists().where(
                table.c.dataset_cid == dataset_cid,
                table.c.licensee == licensee,
                table.c.revoked.is_(False),
                or_(table.c.expires_at.is_(None), table.c.expires_at > at),
            )
        )
        return bool(self.session.execute(stmt).scalar())

    def _list(self, condition: Any) -> Sequence[License]:
        stmt = (
            select(License)
            .where(condition)
            .order_by(license_table.c.issued_at, license_table.c.ledger_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyOrphanRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, orphan: OrphanedTransition) -> None:
        self.session.add(orphan)
        self.session.flush()

    def pending_for_stream(self, stream: str) -> Sequence[OrphanedTransition]:
        table = orphaned_transition_table
        return self._select(table.c.stream == stream, table.c.status == OrphanStatus.PENDING)

    def for_target(self, target_kind: TargetKind, target_id: str) -> Sequence[OrphanedTransition]:
        table = orphaned_transition_table
        return self._select(table.c.target_kind == target_kind, table.c.target_id == target_id)

    def contains(self, stream: str, ledger_id: str) -> bool:
        table = orphaned_transition_table
        stmt = select(exists().where(table.c.stream == stream, table.c.ledger_id == ledger_id))
        return bool(self.session.execute(stmt).scalar())

    def remove(self, orphan: OrphanedTransition) -> None:
        self.session.delete(orphan)
        self.session.flush()

    def list(self, *, status: OrphanStatus | None = None) -> Sequence[OrphanedTransition]:
        if status is None:
            return self._select()
        return self._select(orphaned_transition_table.c.status == status)

    def _select(self, *conditions: Any) -> Sequence[OrphanedTransition]:
        table = orphaned_transition_table
        stmt = (
            select(OrphanedTransition)
            .where(*conditions)
            .order_by(table.c.first_seen_at, table.c.id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyFactFailureRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def record(self, failure: FactFailure) -> bool:
        return insert_if_absent(
            self.session, fact_failure_table, _row_values(failure, fact_failure_table)
        )

    def list(self, *, stream: str | None = None) -> Sequence[FactFailure]:
        table = fact_failure_table
        stmt = select(FactFailure).order_by(table.c.recorded_at, table.c.position)
        if stream is not None:
            stmt = stmt.where(table.c.stream == stream)
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyJobRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, job: VerificationJob) -> None:
        self.session.add(job)

    def get(self, job_id: UUID) -> VerificationJob | None:
        return self.session.get(VerificationJob, job_id, populate_existing=True)

    def claim_next(self, *, token: UUID, now: datetime) -> VerificationJob | None:
        table = verification_job_table
        self.session.flush()
        for _ in range(_CLAIM_ATTEMPTS):
            oldest = (
                select(table.c.id)
                .where(table.c.status == JobStatus.PENDING)
                .order_by(table.c.created_at, table.c.id)
                .limit(1)
                .scalar_subquery()
            )
            stmt = (
                update(table)
                .where(table.c.id == oldest, table.c.status == JobStatus.PENDING)
                .values(status=JobStatus.RUNNING, claim_token=token, started_at=now)
            )
            if _rowcount(self.session, stmt) == 1:
                claimed = (
                    select(VerificationJob)
                    .where(table.c.claim_token == token)
                    .execution_options(populate_existing=True)
                )
                return self.session.execute(claimed).scalar_one()
            if not self._has_pending():
                return None
        return None

    def finish(
        self,
        job_id: UUID,
        *,
        status: JobStatus,
        result: dict[str, Any] | None,
        error: str | None,
        now: datetime,
    ) -> bool:
        if not status.is_terminal:
            raise ValueError(f"{status} is not a terminal job status")
        table = verification_job_table
        stmt = (
            update(table)
            .where(table.c.id == job_id, table.c.status == JobStatus.RUNNING)
            .values(status=status, result=result, error=error, completed_at=now)
        )
        return _rowcount(self.session, stmt) == 1

    def mark_folded(self, job_id: UUID, *, now: datetime) -> bool:
        table = verification_job_table
        stmt = (
            update(table)
            .where(
                table.c.id == job_id,
                table.c.status == JobStatus.COMPLETED,
                table.c.fact_folded_at.is_(None),
            )
            .values(fact_folded_at=now)
        )
        return _rowcount(self.session, stmt) == 1

    def unfolded(self, *, limit: int) -> Sequence[VerificationJob]:
        table = verification_job_table
        stmt = (
            select(VerificationJob)
            .where(table.c.status == JobStatus.COMPLETED, table.c.fact_folded_at.is_(None))
            .order_by(table.c.completed_at, table.c.id)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().all()

    def fail_running_since(self, cutoff: datetime, *, error: str, now: datetime) -> int:
        table = verification_job_table
        stmt = (
            update(table)
            .where(table.c.status == JobStatus.RUNNING, table.c.started_at < cutoff)
            .values(status=JobStatus.FAILED, error=error, completed_at=now)
        )
        return _rowcount(self.session, stmt)

    def purge_finished_before(self, cutoff: datetime) -> int:
        table = verification_job_table
        # A completed job stays until its fact has been folded.
        stmt = delete(table).where(
            or_(
                table.c.status == JobStatus.FAILED,
                and_(table.c.status == JobStatus.COMPLETED, table.c.fact_folded_at.is_not(None)),
            ),
            table.c.completed_at < cutoff,
        )
        return _rowcount(self.session, stmt)

    def _has_pending(self) -> bool:
        table = verification_job_table
        stmt = select(exists().where(table.c.status == JobStatus.PENDING))
        return bool(self.session.execute(stmt).scalar())
