"""
Directorate API — final approval, decisions and approval letters.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.api.deps import commit, get_acting_user, get_db, get_notifier
from permitflow.auth.context import ActingUser
from permitflow.models import Application, DirectorateApproval
from permitflow.schemas.schemas import (
    DirectorateApprovalDetail,
    DirectorateDecisionRequest,
    LetterSignedRequest,
    OpenApprovalRequest,
)
from permitflow.errors import NotFound
from permitflow.services.directorate import DirectorateService
from permitflow.services.notifications import NotificationClient
from permitflow.workflow.statuses import Stage

router = APIRouter(prefix="/api", tags=["directorate"])


def _approval_detail(approval: DirectorateApproval, application: Application) -> DirectorateApprovalDetail:
    return DirectorateApprovalDetail(
        approval_id=approval.approval_id,
        application_id=application.application_id,
        application_status=application.status,
        approval_status=approval.approval_status,
        priority=approval.priority,
        notes=approval.notes,
        submitted_by=approval.submitted_by,
        reviewed_by=approval.reviewed_by,
        reviewed_at=approval.reviewed_at,
        letter_signed=approval.letter_signed,
        letter_signed_at=approval.letter_signed_at,
        letter_signed_by=approval.letter_signed_by,
        signature_envelope_id=approval.signature_envelope_id,
        created_at=approval.created_at,
    )


@router.post(
    "/applications/{application_id}/directorate",
    response_model=DirectorateApprovalDetail,
    status_code=201,
)
async def open_approval(
    application_id: str,
    body: OpenApprovalRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> DirectorateApprovalDetail:
    """Send an application under, or through, Managing Director review to the directorate."""
    service = DirectorateService(db)
    approval = await service.open_approval(application_id, actor, priority=body.priority, notes=body.notes)
    await commit(db)
    application = await db.get(Application, approval.application_id)
    return _approval_detail(approval, application)


@router.get("/applications/{application_id}/directorate", response_model=DirectorateApprovalDetail)
async def get_application_approval(
    application_id: str,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> DirectorateApprovalDetail:
    actor.require_staff()
    approval = await DirectorateService(db).get_for_application(application_id)
    if approval is None:
        raise NotFound(f"Application {application_id} has not been sent to the directorate")
    application = await db.get(Application, approval.application_id)
    return _approval_detail(approval, application)


@router.get("/directorate/approvals", response_model=list[DirectorateApprovalDetail])
async def list_approvals(
    approval_status: str | None = Query(None, pattern="^(pending|approved|rejected|revoked|cancelled)$"),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> list[DirectorateApprovalDetail]:
    actor.require_staff()
    approvals = await DirectorateService(db).list_approvals(
        approval_status=approval_status, limit=size, offset=(page - 1) * size,
    )
    items = []
    for approval in approvals:
        application = await db.get(Application, approval.application_id)
        items.append(_approval_detail(approval, application))
    return items


@router.post("/directorate/approvals/{approval_id}/decision", response_model=DirectorateApprovalDetail)
async def decide(
    approval_id: str,
    body: DirectorateDecisionRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationClient = Depends(get_notifier),
) -> DirectorateApprovalDetail:
    """Approve / reject a pending approval, or revoke / cancel an approved one."""
    service = DirectorateService(db)
    approval, application, old_status = await service.decide(approval_id, body.status, actor, notes=body.notes)
    await commit(db)

    if application.status != old_status:
        await notifier.notify_transition(application, old_status, Stage.DIRECTORATE.value, actor.actor)
    return _approval_detail(approval, application)


@router.post("/directorate/approvals/{approval_id}/letter", response_model=DirectorateApprovalDetail)
async def mark_letter_signed(
    approval_id: str,
    body: LetterSignedRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> DirectorateApprovalDetail:
    approval = await DirectorateService(db).mark_letter_signed(approval_id, actor, envelope_id=body.envelope_id)
    await commit(db)
    application = await db.get(Application, approval.application_id)
    return _approval_detail(approval, application)
