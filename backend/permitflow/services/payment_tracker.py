"""
Invoice / Payment Tracker

One fee payment record per application. Tracks the assessed total against
the amount paid and owns the payment gate that guards the assessment stages:

    pending  -> nothing paid yet
    partial  -> 0 < amount_paid < total_fee
    paid     -> outstanding balance is zero
    waived   -> fees written off, accepts no further payment

Overpayment is refused outright (ConflictError) rather than capped, so the
stored amount_paid never exceeds total_fee.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.auth.context import ActingUser
from permitflow.config import settings
from permitflow.database import utcnow
from permitflow.errors import ConflictError, ValidationError
from permitflow.middleware.metrics import payments_recorded_total
from permitflow.models import Application, FeePayment, PaymentEvent
from permitflow.services import records
from permitflow.services.audit_service import AuditService
from permitflow.services.fee_calculator import FeeQuote, money

logger = logging.getLogger(__name__)

PENDING = "pending"
PARTIAL = "partial"
PAID = "paid"
WAIVED = "waived"

PAYMENT_STATUSES = (PENDING, PARTIAL, PAID, WAIVED)
SETTLED_STATUSES = frozenset({PAID, WAIVED})


def derive_payment_status(total_fee: Decimal, amount_paid: Decimal) -> str:
    if amount_paid <= 0:
        return PENDING if total_fee > 0 else PAID
    if total_fee - amount_paid <= 0:
        return PAID
    return PARTIAL


def parse_amount(value) -> Decimal:
    """Coerce a payment amount to cents, rejecting zero, negative and junk input."""
    try:
        amount = money(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid payment amount: {value!r}", errors=["amount must be a number"])
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(
            f"Payment amount must be greater than zero, got {value!r}",
            errors=["amount must be greater than zero"],
        )
    return amount


@dataclass(frozen=True)
class GatewayCallback:
    """Completed checkout session as reported by the payment gateway."""

    session_id: str
    payment_status: str
    amount_paid: Decimal
    invoice_number: str
    receipt_url: str | None = None


class PaymentTracker:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    # ── Assessment ───────────────────────────────────────────────────────

    async def assess_fees(self, application_id: str, quote: FeeQuote, actor: ActingUser) -> FeePayment:
        """Raise the invoice for an application from a calculable fee quote."""
        actor.require_payments()
        if not quote.calculable:
            raise ValidationError(
                quote.reason or "Fees are not calculable for this application",
                errors=[quote.reason or "fees not calculable"],
            )

        application = await records.get_application(self.session, application_id)
        existing = await records.find_fee_payment(self.session, application)
        if existing is not None:
            raise ConflictError(
                f"Fees already assessed for {application_id} (invoice {existing.invoice_number})",
                details={"invoice_number": existing.invoice_number},
            )

        payment = FeePayment(
            invoice_number=f"INV-{uuid4().hex[:8].upper()}",
            application_id=application.id,
            administration_fee=quote.administration_fee,
            technical_fee=quote.technical_fee,
            total_fee=quote.total_fee,
            amount_paid=Decimal("0.00"),
            payment_status=derive_payment_status(quote.total_fee, Decimal("0.00")),
            fee_source=quote.source,
            administration_form=quote.administration_form,
            technical_form=quote.technical_form,
            processing_days=quote.processing_days,
            assessed_by=actor.actor,
        )
        self.session.add(payment)
        await records.flush(self.session)

        await self.audit.log_fees_assessed(
            payment.invoice_number, application_id, str(payment.total_fee), quote.source, actor.actor,
        )
        logger.info(
            "Assessed %s for %s: %s (%s)",
            payment.invoice_number, application_id, payment.total_fee, quote.source,
        )
        return payment

    async def waive_fees(self, application_id: str, reason: str, actor: ActingUser) -> FeePayment:
        actor.require_payments()
        if not reason or not reason.strip():
            raise ValidationError("A waiver reason is required", errors=["reason is required"])

        application = await records.get_application(self.session, application_id)
        payment = await records.get_fee_payment(self.session, application)
        if payment.payment_status == PAID:
            raise ConflictError(f"Invoice {payment.invoice_number} is already paid")
        if payment.payment_status == WAIVED:
            return payment

        old_status = payment.payment_status
        payment.payment_status = WAIVED
        payment.waiver_reason = reason.strip()
        await records.flush(self.session)

        await self.audit.log_event(
            event_type="fees_waived",
            actor=actor.actor,
            action=f"Fees on {payment.invoice_number} waived",
            resource_type="fee_payment",
            resource_id=payment.invoice_number,
            details={"old_status": old_status, "reason": payment.waiver_reason},
        )
        return payment

    # ── Payments ─────────────────────────────────────────────────────────

    async def record_payment(
        self,
        application_id: str,
        amount,
        reference: str | None,
        actor: ActingUser,
    ) -> FeePayment:
        actor.require_payments()
        value = parse_amount(amount)

        application = await records.get_application(self.session, application_id)
        payment = await records.get_fee_payment(self.session, application)
        return await self._apply(payment, value, reference, actor.actor, channel="manual")

    async def apply_gateway_callback(self, callback: GatewayCallback) -> FeePayment:
        """Record a completed checkout. Replaying the same session is a no-op."""
        payment = await records.get_fee_payment_by_invoice(self.session, callback.invoice_number)

        seen = await self.session.execute(
            select(PaymentEvent.id).where(PaymentEvent.gateway_session_id == callback.session_id)
        )
        if seen.scalar_one_or_none() is not None:
            logger.info("Gateway session %s already applied to %s", callback.session_id, payment.invoice_number)
            return payment

        if callback.payment_status != PAID:
            logger.info(
                "Gateway session %s for %s not paid (%s), nothing recorded",
                callback.session_id, payment.invoice_number, callback.payment_status,
            )
            return payment

        value = parse_amount(callback.amount_paid)
        payment = await self._apply(
            payment, value, callback.session_id, "gateway", channel="gateway",
            session_id=callback.session_id,
        )
        if callback.receipt_url:
            payment.receipt_url = callback.receipt_url
            await records.flush(self.session)
        return payment

    async def _apply(
        self,
        payment: FeePayment,
        amount: Decimal,
        reference: str | None,
        recorded_by: str,
        *,
        channel: str,
        session_id: str | None = None,
    ) -> FeePayment:
        if payment.payment_status == WAIVED:
            raise ConflictError(
                f"Invoice {payment.invoice_number} is waived and accepts no payment",
                details={"invoice_number": payment.invoice_number},
            )

        outstanding = payment.outstanding_balance
        if amount > outstanding:
            raise ConflictError(
                f"Payment of {amount} exceeds the outstanding balance of {outstanding} "
                f"on {payment.invoice_number}",
                details={
                    "invoice_number": payment.invoice_number,
                    "amount": str(amount),
                    "outstanding_balance": str(outstanding),
                },
            )

        payment.amount_paid = money(Decimal(payment.amount_paid) + amount)
        payment.payment_status = derive_payment_status(Decimal(payment.total_fee), payment.amount_paid)
        if reference:
            payment.payment_reference = reference
        if payment.payment_status == PAID:
            payment.paid_at = utcnow()

        self.session.add(PaymentEvent(
            fee_payment_id=payment.id,
            amount=amount,
            reference=reference,
            gateway_session_id=session_id,
            recorded_by=recorded_by,
        ))
        await records.flush(self.session)

        payments_recorded_total.labels(channel=channel, payment_status=payment.payment_status).inc()
        await self.audit.log_payment_recorded(
            payment.invoice_number, str(amount), str(payment.amount_paid),
            payment.payment_status, recorded_by, reference,
        )
        logger.info(
            "Recorded %s on %s via %s, now %s (%s outstanding)",
            amount, payment.invoice_number, channel, payment.payment_status, payment.outstanding_balance,
        )
        return payment

    # ── Gate & read models ───────────────────────────────────────────────

    async def ensure_assessment_unblocked(self, application: Application) -> FeePayment:
        """Raise ConflictError unless the application's fees are paid or waived."""
        payment = await records.find_fee_payment(self.session, application)
        if payment is None:
            raise ConflictError(
                f"Fees have not been assessed for {application.application_id}; "
                "assessment cannot start until they are paid",
                details={"application_id": application.application_id, "payment_status": None},
            )
        if payment.payment_status not in SETTLED_STATUSES:
            raise ConflictError(
                f"Outstanding balance of {payment.outstanding_balance} on {payment.invoice_number}; "
                "assessment cannot start until fees are paid",
                details={
                    "application_id": application.application_id,
                    "invoice_number": payment.invoice_number,
                    "payment_status": payment.payment_status,
                    "outstanding_balance": str(payment.outstanding_balance),
                },
            )
        return payment

    async def payment_events(self, payment: FeePayment) -> list[PaymentEvent]:
        result = await self.session.execute(
            select(PaymentEvent)
            .where(PaymentEvent.fee_payment_id == payment.id)
            .order_by(PaymentEvent.id.asc())
        )
        return list(result.scalars())

    async def invoice_summary(self, application_id: str) -> dict:
        """Deterministic invoice view: line items, totals and payment history."""
        application = await records.get_application(self.session, application_id)
        payment = await records.get_fee_payment(self.session, application)
        events = await self.payment_events(payment)

        return {
            "invoice_number": payment.invoice_number,
            "application_id": application.application_id,
            "entity_name": application.entity_name,
            "activity_type": application.activity_type,
            "permit_level": application.permit_level,
            "currency": settings.payment_currency.upper(),
            "line_items": [
                {
                    "description": "Administration fee",
                    "form": payment.administration_form,
                    "amount": str(money(payment.administration_fee)),
                },
                {
                    "description": "Technical fee",
                    "form": payment.technical_form,
                    "amount": str(money(payment.technical_fee)),
                },
            ],
            "total_fee": str(money(payment.total_fee)),
            "amount_paid": str(money(payment.amount_paid)),
            "outstanding_balance": str(money(payment.outstanding_balance)),
            "payment_status": payment.payment_status,
            "fee_source": payment.fee_source,
            "is_estimated": payment.fee_source == "estimated",
            "processing_days": payment.processing_days,
            "payments": [
                {
                    "amount": str(money(event.amount)),
                    "reference": event.reference,
                    "recorded_by": event.recorded_by,
                    "recorded_at": event.created_at.isoformat() if event.created_at else None,
                }
                for event in events
            ],
        }

    async def list_payments(
        self,
        payment_status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[tuple[FeePayment, str]]:
        """Invoices newest first, each paired with its public application id."""
        query = (
            select(FeePayment, Application.application_id)
            .join(Application, Application.id == FeePayment.application_id)
            .order_by(FeePayment.id.desc())
        )
        if payment_status:
            if payment_status not in PAYMENT_STATUSES:
                raise ValidationError(
                    f"Unknown payment status: {payment_status!r}",
                    errors=[f"payment_status must be one of {list(PAYMENT_STATUSES)}"],
                )
            query = query.where(FeePayment.payment_status == payment_status)
        result = await self.session.execute(query.offset(offset).limit(limit))
        return [(payment, application_id) for payment, application_id in result.all()]
