"""
Payments API — fee assessment, invoices, payments, waivers and gateway checkout.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.api.deps import commit, get_acting_user, get_db, get_gateway
from permitflow.auth.context import ActingUser
from permitflow.errors import ConflictError
from permitflow.models import Application, FeePayment
from permitflow.schemas.schemas import (
    AssessFeesRequest,
    CheckoutRequest,
    CheckoutResponse,
    FeePaymentDetail,
    GatewayConfirmRequest,
    InvoiceSummary,
    RecordPaymentRequest,
    WaiveFeesRequest,
)
from permitflow.services import records
from permitflow.services.fee_calculator import FeeCalculator
from permitflow.services.payment_gateway import PaymentGateway
from permitflow.services.payment_tracker import PaymentTracker
from permitflow.services.review_workflow import ReviewWorkflow

router = APIRouter(prefix="/api", tags=["payments"])


def _payment_detail(payment: FeePayment, application_id: str) -> FeePaymentDetail:
    return FeePaymentDetail(
        invoice_number=payment.invoice_number,
        application_id=application_id,
        administration_fee=float(payment.administration_fee),
        technical_fee=float(payment.technical_fee),
        total_fee=float(payment.total_fee),
        amount_paid=float(payment.amount_paid),
        outstanding_balance=float(payment.outstanding_balance),
        payment_status=payment.payment_status,
        fee_source=payment.fee_source,
        is_estimated=payment.fee_source == "estimated",
        payment_reference=payment.payment_reference,
        receipt_url=payment.receipt_url,
        waiver_reason=payment.waiver_reason,
        paid_at=payment.paid_at,
    )


# ---------------------------------------------------------------------------
# POST /api/applications/{application_id}/fees — raise the invoice
# ---------------------------------------------------------------------------

@router.post("/applications/{application_id}/fees", response_model=FeePaymentDetail, status_code=201)
async def assess_fees(
    application_id: str,
    body: AssessFeesRequest | None = None,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> FeePaymentDetail:
    """Quote the application's activity/level against the schedule and raise its invoice."""
    actor.require_payments()
    application = await records.get_application(db, application_id)
    quote = await FeeCalculator(db).quote(
        application.activity_type, application.permit_level,
        category=body.category if body else None,
    )
    payment = await PaymentTracker(db).assess_fees(application_id, quote, actor)
    await commit(db)
    return _payment_detail(payment, application_id)


@router.get("/applications/{application_id}/fees", response_model=FeePaymentDetail)
async def get_fees(
    application_id: str,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> FeePaymentDetail:
    application = await ReviewWorkflow(db).get_application(application_id, actor)
    payment = await records.get_fee_payment(db, application)
    return _payment_detail(payment, application_id)


@router.get("/applications/{application_id}/invoice", response_model=InvoiceSummary)
async def get_invoice(
    application_id: str,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> InvoiceSummary:
    await ReviewWorkflow(db).get_application(application_id, actor)
    summary = await PaymentTracker(db).invoice_summary(application_id)
    return InvoiceSummary(**summary)


@router.post("/applications/{application_id}/payments", response_model=FeePaymentDetail)
async def record_payment(
    application_id: str,
    body: RecordPaymentRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> FeePaymentDetail:
    """Record a payment received at the counter or by bank transfer."""
    payment = await PaymentTracker(db).record_payment(application_id, body.amount, body.reference, actor)
    await commit(db)
    return _payment_detail(payment, application_id)


@router.post("/applications/{application_id}/fees/waive", response_model=FeePaymentDetail)
async def waive_fees(
    application_id: str,
    body: WaiveFeesRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> FeePaymentDetail:
    payment = await PaymentTracker(db).waive_fees(application_id, body.reason, actor)
    await commit(db)
    return _payment_detail(payment, application_id)


# ---------------------------------------------------------------------------
# Online checkout
# ---------------------------------------------------------------------------

@router.post("/applications/{application_id}/checkout", response_model=CheckoutResponse)
async def create_checkout(
    application_id: str,
    body: CheckoutRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
) -> CheckoutResponse:
    """Hand the outstanding invoice to the payment gateway; the client follows `url`."""
    await ReviewWorkflow(db).get_application(application_id, actor)
    tracker = PaymentTracker(db)
    summary = await tracker.invoice_summary(application_id)
    if summary["payment_status"] in ("paid", "waived"):
        raise ConflictError(f"Invoice {summary['invoice_number']} has nothing outstanding")

    session = await gateway.create_checkout_session(summary, body.success_url, body.cancel_url)
    return CheckoutResponse(invoice_number=summary["invoice_number"], **session)


@router.post("/payments/confirm", response_model=FeePaymentDetail)
async def confirm_checkout(
    body: GatewayConfirmRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
) -> FeePaymentDetail:
    """Verify a checkout session with the gateway and record it. Safe to repeat."""
    callback = await gateway.retrieve_session(body.session_id)
    payment = await PaymentTracker(db).apply_gateway_callback(callback)
    await commit(db)
    application = await db.get(Application, payment.application_id)
    return _payment_detail(payment, application.application_id)


@router.get("/payments", response_model=list[FeePaymentDetail])
async def list_payments(
    payment_status: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> list[FeePaymentDetail]:
    actor.require_payments()
    rows = await PaymentTracker(db).list_payments(
        payment_status=payment_status, limit=size, offset=(page - 1) * size,
    )
    return [_payment_detail(payment, application_id) for payment, application_id in rows]
