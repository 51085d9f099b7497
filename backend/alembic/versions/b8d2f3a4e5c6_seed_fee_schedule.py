"""Seed the fee schedule

Revision ID: b8d2f3a4e5c6
Revises: a7c1e2f3d4b5
Create Date: 2026-10-05 09:30:00.000000

Loads the prescribed activity fees for Levels 1-3. Level 2 and 3
administration fees are prorated from the annual recurrent fee over the
processing period.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "b8d2f3a4e5c6"
down_revision: Union[str, None] = "a7c1e2f3d4b5"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    from permitflow.seed.fee_schedule import build_schedule_rows

    fee_schedule = sa.table(
        "fee_schedule",
        sa.column("activity_type", sa.String),
        sa.column("permit_level", sa.String),
        sa.column("category", sa.String),
        sa.column("fee_category", sa.String),
        sa.column("administration_fee", sa.Numeric),
        sa.column("technical_fee", sa.Numeric),
        sa.column("administration_form", sa.String),
        sa.column("technical_form", sa.String),
        sa.column("processing_days", sa.Integer),
        sa.column("is_active", sa.Boolean),
    )
    op.bulk_insert(fee_schedule, build_schedule_rows())


def downgrade() -> None:
    op.execute("DELETE FROM fee_schedule")
