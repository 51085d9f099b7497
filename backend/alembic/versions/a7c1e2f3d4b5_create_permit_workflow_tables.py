"""Create permit workflow tables

Revision ID: a7c1e2f3d4b5
Revises:
Create Date: 2026-10-05 09:00:00.000000

Applications with per-stage review payloads, the fee schedule, fee payments
with their payment events, directorate approvals and the hash-chained
audit log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c1e2f3d4b5"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

STAGE_PREFIXES = ("registry", "compliance", "md")


def _stage_columns() -> list[sa.Column]:
    columns = []
    for prefix in STAGE_PREFIXES:
        columns.extend([
            sa.Column(f"{prefix}_assessment", sa.Text(), nullable=True),
            sa.Column(f"{prefix}_remarks", sa.Text(), nullable=True),
            sa.Column(f"{prefix}_proposed_action", sa.Text(), nullable=True),
            sa.Column(f"{prefix}_documents", postgresql.JSONB(), nullable=True),
            sa.Column(f"{prefix}_reviewed_by", sa.String(100), nullable=True),
            sa.Column(f"{prefix}_reviewed_at", sa.DateTime(), nullable=True),
        ])
    return columns


def upgrade() -> None:
    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("application_id", sa.String(30), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False, server_default="permit"),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("entity_name", sa.String(300), nullable=False),
        sa.Column("applicant_id", sa.String(100), nullable=False),
        sa.Column("activity_type", sa.String(200), nullable=False),
        sa.Column("permit_level", sa.String(20), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="submitted"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_stage_columns(),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_applications_application_id", "applications", ["application_id"], unique=True)
    op.create_index("ix_applications_applicant_id", "applications", ["applicant_id"])
    op.create_index("ix_applications_status", "applications", ["status"])

    op.create_table(
        "fee_schedule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("activity_type", sa.String(200), nullable=False),
        sa.Column("permit_level", sa.String(20), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("fee_category", sa.String(10), nullable=True),
        sa.Column("administration_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("technical_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("administration_form", sa.String(30), nullable=False),
        sa.Column("technical_form", sa.String(30), nullable=False),
        sa.Column("processing_days", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.UniqueConstraint("activity_type", "permit_level", name="uq_fee_schedule_activity_level"),
    )
    op.create_index("ix_fee_schedule_activity_type", "fee_schedule", ["activity_type"])
    op.create_index("ix_fee_schedule_permit_level", "fee_schedule", ["permit_level"])

    op.create_table(
        "fee_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_number", sa.String(30), nullable=False),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("administration_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("technical_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("fee_source", sa.String(20), nullable=False, server_default="official"),
        sa.Column("administration_form", sa.String(30), nullable=True),
        sa.Column("technical_form", sa.String(30), nullable=True),
        sa.Column("processing_days", sa.Integer(), nullable=True),
        sa.Column("payment_reference", sa.String(200), nullable=True),
        sa.Column("receipt_url", sa.String(500), nullable=True),
        sa.Column("waiver_reason", sa.String(1000), nullable=True),
        sa.Column("assessed_by", sa.String(100), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "payment_status = 'waived' OR amount_paid <= total_fee",
            name="ck_fee_payments_not_overpaid",
        ),
    )
    op.create_index("ix_fee_payments_invoice_number", "fee_payments", ["invoice_number"], unique=True)
    op.create_index("ix_fee_payments_application_id", "fee_payments", ["application_id"], unique=True)
    op.create_index("ix_fee_payments_payment_status", "fee_payments", ["payment_status"])

    op.create_table(
        "payment_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("fee_payment_id", sa.Integer(), sa.ForeignKey("fee_payments.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reference", sa.String(200), nullable=True),
        sa.Column("gateway_session_id", sa.String(200), nullable=True),
        sa.Column("recorded_by", sa.String(100), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("gateway_session_id"),
    )
    op.create_index("ix_payment_events_fee_payment_id", "payment_events", ["fee_payment_id"])

    op.create_table(
        "directorate_approvals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("approval_id", sa.String(30), nullable=False),
        sa.Column("application_id", sa.Integer(), sa.ForeignKey("applications.id"), nullable=False),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.String(10), nullable=False, server_default="normal"),
        sa.Column("notes", sa.String(2000), nullable=True),
        sa.Column("submitted_by", sa.String(100), nullable=False),
        sa.Column("reviewed_by", sa.String(100), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
        sa.Column("letter_signed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("letter_signed_at", sa.DateTime(), nullable=True),
        sa.Column("letter_signed_by", sa.String(100), nullable=True),
        sa.Column("signature_envelope_id", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_directorate_approvals_approval_id", "directorate_approvals", ["approval_id"], unique=True)
    op.create_index(
        "ix_directorate_approvals_application_id", "directorate_approvals", ["application_id"], unique=True,
    )
    op.create_index("ix_directorate_approvals_approval_status", "directorate_approvals", ["approval_status"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_id", sa.String(36), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("actor", sa.String(100), nullable=False),
        sa.Column("action", sa.String(500), nullable=False),
        sa.Column("resource_type", sa.String(30), nullable=True),
        sa.Column("resource_id", sa.String(50), nullable=True),
        sa.Column("details", postgresql.JSONB(), nullable=True),
        sa.Column("previous_hash", sa.String(64), nullable=True),
        sa.Column("current_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_event_id", "audit_log", ["event_id"], unique=True)
    op.create_index("ix_audit_log_event_type", "audit_log", ["event_type"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("directorate_approvals")
    op.drop_table("payment_events")
    op.drop_table("fee_payments")
    op.drop_table("fee_schedule")
    op.drop_table("applications")
