"""
Pydantic schemas for API request/response models.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field


# ── Pagination ──

class PaginatedResponse(BaseModel):
    total: int
    page: int
    size: int
    pages: int


# ── Applications ──

class DocumentRef(BaseModel):
    name: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)


class ApplicationCreate(BaseModel):
    title: str
    entity_name: str
    activity_type: str
    permit_level: str
    kind: str = Field("permit", pattern="^(permit|intent)$")


class ApplicationSummary(BaseModel):
    application_id: str
    kind: str
    title: str
    entity_name: str
    activity_type: str
    permit_level: str
    status: str
    status_label: str
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ApplicationListResponse(PaginatedResponse):
    items: list[ApplicationSummary]


class ReviewTab(BaseModel):
    stage: str
    editable: bool
    targets: list[str]
    assessment: str | None = None
    remarks: str | None = None
    proposed_action: str | None = None
    documents: list[dict] = []
    reviewed_by: str | None = None
    reviewed_at: str | None = None


class ApplicationDetail(ApplicationSummary):
    applicant_id: str
    review_tabs: list[ReviewTab]
    editable_stages: list[str]
    elevated: bool
    allowed_targets: list[str]


class StageReviewRequest(BaseModel):
    # Required-ness is checked by the workflow so empty strings get the same
    # ValidationError as missing fields
    assessment: str = ""
    proposed_action: str = ""
    target_status: str = ""
    remarks: str | None = None
    documents: list[DocumentRef] = []
    expected_version: int | None = None


# ── Fees ──

class FeeQuoteResponse(BaseModel):
    calculable: bool
    activity_type: str | None = None
    permit_level: str | None = None
    administration_fee: float | None = None
    technical_fee: float | None = None
    total_fee: float | None = None
    administration_form: str | None = None
    technical_form: str | None = None
    processing_days: int | None = None
    source: str | None = None
    is_estimated: bool = False
    matched_activity_type: str | None = None
    warning: str | None = None
    reason: str | None = None


class FeeScheduleItem(BaseModel):
    activity_type: str
    permit_level: str
    category: str
    fee_category: str | None = None
    administration_fee: float
    technical_fee: float
    administration_form: str
    technical_form: str
    processing_days: int


class FeeScheduleResponse(BaseModel):
    total: int
    items: list[FeeScheduleItem]


class AssessFeesRequest(BaseModel):
    category: str | None = None


# ── Payments ──

class FeePaymentDetail(BaseModel):
    invoice_number: str
    application_id: str
    administration_fee: float
    technical_fee: float
    total_fee: float
    amount_paid: float
    outstanding_balance: float
    payment_status: str
    fee_source: str
    is_estimated: bool
    payment_reference: str | None = None
    receipt_url: str | None = None
    waiver_reason: str | None = None
    paid_at: datetime | None = None


class RecordPaymentRequest(BaseModel):
    amount: Decimal
    reference: str | None = Field(None, max_length=200)


class WaiveFeesRequest(BaseModel):
    reason: str


class CheckoutRequest(BaseModel):
    success_url: str
    cancel_url: str


class CheckoutResponse(BaseModel):
    session_id: str | None = None
    url: str | None = None
    invoice_number: str


class GatewayConfirmRequest(BaseModel):
    session_id: str = Field(..., min_length=1)


class InvoiceLineItem(BaseModel):
    description: str
    form: str | None = None
    amount: str


class InvoicePaymentItem(BaseModel):
    amount: str
    reference: str | None = None
    recorded_by: str
    recorded_at: str | None = None


class InvoiceSummary(BaseModel):
    invoice_number: str
    application_id: str
    entity_name: str
    activity_type: str
    permit_level: str
    currency: str
    line_items: list[InvoiceLineItem]
    total_fee: str
    amount_paid: str
    outstanding_balance: str
    payment_status: str
    fee_source: str
    is_estimated: bool
    processing_days: int | None = None
    payments: list[InvoicePaymentItem]


# ── Directorate ──

class OpenApprovalRequest(BaseModel):
    priority: str = Field("normal", pattern="^(low|normal|high|urgent)$")
    notes: str | None = Field(None, max_length=2000)


class DirectorateDecisionRequest(BaseModel):
    status: str
    notes: str | None = Field(None, max_length=2000)


class LetterSignedRequest(BaseModel):
    envelope_id: str | None = Field(None, max_length=100)


class DirectorateApprovalDetail(BaseModel):
    approval_id: str
    application_id: str
    application_status: str
    approval_status: str
    priority: str
    notes: str | None = None
    submitted_by: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    letter_signed: bool
    letter_signed_at: datetime | None = None
    letter_signed_by: str | None = None
    signature_envelope_id: str | None = None
    created_at: datetime | None = None


# ── Audit ──

class AuditEntry(BaseModel):
    id: int
    event_id: str
    event_type: str
    actor: str
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    details: dict = {}
    previous_hash: str | None = None
    current_hash: str
    created_at: datetime | None = None


class AuditListResponse(PaginatedResponse):
    items: list[AuditEntry]


class IntegrityCheckResponse(BaseModel):
    valid: bool
    entries_checked: int
    first_invalid: str | None = None
    reason: str | None = None


# ── Identity ──

class MeResponse(BaseModel):
    user_id: str
    user_type: str
    staff_unit: str | None = None
    staff_position: str | None = None
    editable_stages: list[str]
    elevated: bool
    can_decide_directorate: bool
    can_sign_letters: bool
    can_manage_payments: bool
