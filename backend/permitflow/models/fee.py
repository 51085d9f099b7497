from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    String, DateTime, Integer, Numeric, Boolean, ForeignKey, CheckConstraint, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column

from permitflow.database import Base, utcnow


class FeeSchedule(Base):
    """Reference fee table: (activity_type, permit_level) -> fees and forms."""

    __tablename__ = "fee_schedule"
    __table_args__ = (
        UniqueConstraint("activity_type", "permit_level", name="uq_fee_schedule_activity_level"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    activity_type: Mapped[str] = mapped_column(String(200), index=True)
    permit_level: Mapped[str] = mapped_column(String(20), index=True)  # "Level 1" | "Level 2" | "Level 3"
    category: Mapped[str] = mapped_column(String(100))
    fee_category: Mapped[str | None] = mapped_column(String(10), nullable=True)  # e.g. "2.1"
    administration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    technical_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    administration_form: Mapped[str] = mapped_column(String(30))
    technical_form: Mapped[str] = mapped_column(String(30))
    processing_days: Mapped[int] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class FeePayment(Base):
    """One invoice per application: assessed fees versus amount paid."""

    __tablename__ = "fee_payments"
    __table_args__ = (
        CheckConstraint(
            "payment_status = 'waived' OR amount_paid <= total_fee",
            name="ck_fee_payments_not_overpaid",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    invoice_number: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    application_id: Mapped[int] = mapped_column(ForeignKey("applications.id"), unique=True, index=True)
    administration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    technical_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    total_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"))
    payment_status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    fee_source: Mapped[str] = mapped_column(String(20), default="official")  # "official" | "estimated"
    administration_form: Mapped[str | None] = mapped_column(String(30), nullable=True)
    technical_form: Mapped[str | None] = mapped_column(String(30), nullable=True)
    processing_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    receipt_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    waiver_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    assessed_by: Mapped[str] = mapped_column(String(100))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=utcnow)

    @property
    def outstanding_balance(self) -> Decimal:
        return Decimal(self.total_fee) - Decimal(self.amount_paid)


class PaymentEvent(Base):
    """One recorded payment; gateway session ids make callbacks idempotent."""

    __tablename__ = "payment_events"

    id: Mapped[int] = mapped_column(primary_key=True)
    fee_payment_id: Mapped[int] = mapped_column(ForeignKey("fee_payments.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    gateway_session_id: Mapped[str | None] = mapped_column(String(200), unique=True, nullable=True)
    recorded_by: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
