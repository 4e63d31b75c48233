"""job fact_folded_at

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-16 09:40:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from ledgersync.adapters.sqlalchemy.mappings import UTCDateTime

revision: str = "0002"
down_revision: str | None = "0001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("verification_job", sa.Column("fact_folded_at", UTCDateTime(), nullable=True))
    # Jobs completed before this revision already emitted their fact.
    job = sa.table(
        "verification_job",
        sa.column("status", sa.String()),
        sa.column("completed_at", UTCDateTime()),
        sa.column("fact_folded_at", UTCDateTime()),
    )
    op.execute(
        job.update()
        .where(job.c.status == "COMPLETED")
        .values(fact_folded_at=job.c.completed_at)
    )


def downgrade() -> None:
    with op.batch_alter_table("verification_job") as batch_op:
        batch_op.drop_column("fact_folded_at")
