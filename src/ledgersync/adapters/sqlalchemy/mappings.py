"""SQLAlchemy mapping metadata for the ledgersync domain model."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from functools import cache
from typing import TYPE_CHECKING, Any

from pydantic import TypeAdapter
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers

from ledgersync.domain.model import (
    FACT_TYPES,
    Dataset,
    EventCursor,
    FactFailure,
    FactKind,
    JobStatus,
    LedgerFact,
    License,
    OrphanedTransition,
    OrphanStatus,
    TargetKind,
    VerificationJob,
    VerificationStatus,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


@cache
def _fact_adapter(kind: FactKind) -> TypeAdapter[Any]:
    return TypeAdapter(FACT_TYPES[kind])


def dump_fact(fact: LedgerFact) -> dict[str, Any]:
    return {"kind": fact.kind.value, "fact": _fact_adapter(fact.kind).dump_python(fact, mode="json")}


def load_fact(document: dict[str, Any]) -> LedgerFact:
    kind = FactKind(document["kind"])
    return _fact_adapter(kind).validate_python(document["fact"])


class FactDocumentType(TypeDecorator[LedgerFact]):
    """Store a ledger fact as a JSON document tagged with its kind."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: LedgerFact | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(dump_fact(value), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> LedgerFact | None:
        _ = dialect
        if value is None:
            return None
        return load_fact(json.loads(value))


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Projection tables -----------------------------------------------------------

dataset_table = Table(
    "dataset",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("ledger_id", String, nullable=False, unique=True),
    Column("content_id", String, nullable=False, unique=True),
    Column("owner_address", String, nullable=True),
    Column("title", String, nullable=True),
    Column("registered_at", UTCDateTime(), nullable=True),
    Column("tx_digest", String, nullable=True),
    Column(
        "verification_status",
        Enum(VerificationStatus, native_enum=False),
        nullable=False,
        default=VerificationStatus.UNVERIFIED,
    ),
    Column("verification_score", Float, nullable=True),
    Column("verification_job_id", String, nullable=True),
    Column("verified_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
)

license_table = Table(
    "license",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("ledger_id", String, nullable=False, unique=True),
    Column("dataset_cid", String, nullable=False),
    Column("licensee", String, nullable=False),
    Column("license_type", String, nullable=False),
    Column("issued_at", UTCDateTime(), nullable=False),
    Column("expires_at", UTCDateTime(), nullable=True),
    Column("dataset_owner", String, nullable=True),
    Column("tx_digest", String, nullable=True),
    Column("revoked", Boolean, nullable=False, default=False),
    Column("revoked_at", UTCDateTime(), nullable=True),
    Column("revoked_by", String, nullable=True),
    Column("created_at", UTCDateTime(), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    Index("ix_license_dataset_licensee", "dataset_cid", "licensee"),
    Index("ix_license_licensee", "licensee"),
)

# Sync bookkeeping ------------------------------------------------------------

event_cursor_table = Table(
    "event_cursor",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("stream", String, nullable=False, unique=True),
    Column("token", String, nullable=True),
    Column("sequence", Integer, nullable=False, default=0),
    Column("updated_at", UTCDateTime(), nullable=True),
)

orphaned_transition_table = Table(
    "orphaned_transition",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("fact", FactDocumentType(), nullable=False),
    Column("stream", String, nullable=False),
    Column("target_kind", Enum(TargetKind, native_enum=False), nullable=False),
    Column("target_id", String, nullable=False),
    Column("fact_kind", Enum(FactKind, native_enum=False), nullable=False),
    Column("ledger_id", String, nullable=False),
    Column("cycles", Integer, nullable=False, default=0),
    Column("status", Enum(OrphanStatus, native_enum=False), nullable=False),
    Column("first_seen_at", UTCDateTime(), nullable=False),
    Column("last_attempt_at", UTCDateTime(), nullable=True),
    UniqueConstraint("stream", "fact_kind", "ledger_id", name="uq_orphaned_transition_fact"),
    Index("ix_orphaned_transition_target", "target_kind", "target_id"),
    Index("ix_orphaned_transition_stream_status", "stream", "status"),
)

fact_failure_table = Table(
    "fact_failure",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("ledger_id", String, nullable=False),
    Column("stream", String, nullable=False),
    Column("position", String, nullable=False),
    Column("reason", Text, nullable=False),
    Column("recorded_at", UTCDateTime(), nullable=False),
    UniqueConstraint("stream", "position", name="uq_fact_failure_position"),
)

# Job queue -------------------------------------------------------------------

verification_job_table = Table(
    "verification_job",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("user_id", String, nullable=False),
    Column("input_ref", String, nullable=False),
    Column("input", JSON(none_as_null=True), nullable=False),
    Column("status", Enum(JobStatus, native_enum=False), nullable=False),
    Column("result", JSON(none_as_null=True), nullable=True),
    Column("error", Text, nullable=True),
    Column("claim_token", UUIDColumnType, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("started_at", UTCDateTime(), nullable=True),
    Column("completed_at", UTCDateTime(), nullable=True),
    Column("fact_folded_at", UTCDateTime(), nullable=True),
    Index("ix_verification_job_status_created", "status", "created_at"),
    Index("ix_verification_job_claim_token", "claim_token"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Dataset, dataset_table)
    mapper_registry.map_imperatively(License, license_table)
    mapper_registry.map_imperatively(EventCursor, event_cursor_table)
    mapper_registry.map_imperatively(OrphanedTransition, orphaned_transition_table)
    mapper_registry.map_imperatively(FactFailure, fact_failure_table)
    mapper_registry.map_imperatively(VerificationJob, verification_job_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
