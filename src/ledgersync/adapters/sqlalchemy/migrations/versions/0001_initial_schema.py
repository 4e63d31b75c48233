"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-09-14 10:12:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from ledgersync.adapters.sqlalchemy.mappings import UTCDateTime

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "dataset",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("ledger_id", sa.String(), nullable=False),
        sa.Column("content_id", sa.String(), nullable=False),
        sa.Column("owner_address", sa.String(), nullable=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("registered_at", UTCDateTime(), nullable=True),
        sa.Column("tx_digest", sa.String(), nullable=True),
        sa.Column("verification_status", sa.String(length=14), nullable=False),
        sa.Column("verification_score", sa.Float(), nullable=True),
        sa.Column("verification_job_id", sa.String(), nullable=True),
        sa.Column("verified_at", UTCDateTime(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=True),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_dataset")),
        sa.UniqueConstraint("ledger_id", name=op.f("uq_dataset_dataset_ledger_id")),
        sa.UniqueConstraint("content_id", name=op.f("uq_dataset_dataset_content_id")),
    )

    op.create_table(
        "license",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("ledger_id", sa.String(), nullable=False),
        sa.Column("dataset_cid", sa.String(), nullable=False),
        sa.Column("licensee", sa.String(), nullable=False),
        sa.Column("license_type", sa.String(), nullable=False),
        sa.Column("issued_at", UTCDateTime(), nullable=False),
        sa.Column("expires_at", UTCDateTime(), nullable=True),
        sa.Column("dataset_owner", sa.String(), nullable=True),
        sa.Column("tx_digest", sa.String(), nullable=True),
        sa.Column("revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", UTCDateTime(), nullable=True),
        sa.Column("revoked_by", sa.String(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=True),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_license")),
        sa.UniqueConstraint("ledger_id", name=op.f("uq_license_license_ledger_id")),
    )
    op.create_index("ix_license_dataset_licensee", "license", ["dataset_cid", "licensee"])
    op.create_index("ix_license_licensee", "license", ["licensee"])

    op.create_table(
        "event_cursor",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("stream", sa.String(), nullable=False),
        sa.Column("token", sa.String(), nullable=True),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_event_cursor")),
        sa.UniqueConstraint("stream", name=op.f("uq_event_cursor_event_cursor_stream")),
    )

    op.create_table(
        "orphaned_transition",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("fact", sa.Text(), nullable=False),
        sa.Column("stream", sa.String(), nullable=False),
        sa.Column("target_kind", sa.String(length=7), nullable=False),
        sa.Column("fact_kind", sa.String(length=18), nullable=False),
        sa.Column("target_id", sa.String(), nullable=False),
        sa.Column("ledger_id", sa.String(), nullable=False),
        sa.Column("cycles", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=7), nullable=False),
        sa.Column("first_seen_at", UTCDateTime(), nullable=False),
        sa.Column("last_attempt_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_orphaned_transition")),
        sa.UniqueConstraint(
            "stream", "fact_kind", "ledger_id", name="uq_orphaned_transition_fact"
        ),
    )
    op.create_index(
        "ix_orphaned_transition_target", "orphaned_transition", ["target_kind", "target_id"]
    )
    op.create_index(
        "ix_orphaned_transition_stream_status", "orphaned_transition", ["stream", "status"]
    )

    op.create_table(
        "fact_failure",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("ledger_id", sa.String(), nullable=False),
        sa.Column("stream", sa.String(), nullable=False),
        sa.Column("position", sa.String(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("recorded_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_fact_failure")),
        sa.UniqueConstraint("stream", "position", name="uq_fact_failure_position"),
    )

    op.create_table(
        "verification_job",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("input_ref", sa.String(), nullable=False),
        sa.Column("input", sa.JSON(none_as_null=True), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("result", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("claim_token", sa.Uuid(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("started_at", UTCDateTime(), nullable=True),
        sa.Column("completed_at", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_verification_job")),
    )
    op.create_index(
        "ix_verification_job_status_created", "verification_job", ["status", "created_at"]
    )
    op.create_index("ix_verification_job_claim_token", "verification_job", ["claim_token"])


def downgrade() -> None:
    op.drop_index("ix_verification_job_claim_token", table_name="verification_job")
    op.drop_index("ix_verification_job_status_created", table_name="verification_job")
    op.drop_table("verification_job")
    op.drop_table("fact_failure")
    op.drop_index("ix_orphaned_transition_stream_status", table_name="orphaned_transition")
    op.drop_index("ix_orphaned_transition_target", table_name="orphaned_transition")
    op.drop_table("orphaned_transition")
    op.drop_table("event_cursor")
    op.drop_index("ix_license_licensee", table_name="license")
    op.drop_index("ix_license_dataset_licensee", table_name="license")
    op.drop_table("license")
    op.drop_table("dataset")
