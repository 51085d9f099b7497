"""
Applications API — intake, listing, detail with review tabs, stage reviews.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.api.deps import commit, get_acting_user, get_db, get_notifier
from permitflow.auth.context import ActingUser
from permitflow.models import Application
from permitflow.schemas.schemas import (
    ApplicationCreate,
    ApplicationDetail,
    ApplicationListResponse,
    ApplicationSummary,
    ReviewTab,
    StageReviewRequest,
)
from permitflow.services.notifications import NotificationClient
from permitflow.services.review_workflow import (
    NewApplication,
    ReviewWorkflow,
    StageSubmission,
    status_label,
)
from permitflow.workflow.statuses import ApplicationStatus, Stage, allowed_targets

router = APIRouter(prefix="/api/applications", tags=["applications"])


def _summary(application: Application) -> ApplicationSummary:
    return ApplicationSummary(
        application_id=application.application_id,
        kind=application.kind,
        title=application.title,
        entity_name=application.entity_name,
        activity_type=application.activity_type,
        permit_level=application.permit_level,
        status=application.status,
        status_label=status_label(application.status),
        version=application.version,
        created_at=application.created_at,
        updated_at=application.updated_at,
    )


def _detail(workflow: ReviewWorkflow, application: Application, actor: ActingUser) -> ApplicationDetail:
    editable = actor.editable_stages
    return ApplicationDetail(
        **_summary(application).model_dump(),
        applicant_id=application.applicant_id,
        review_tabs=[ReviewTab(**tab) for tab in workflow.review_tabs(application, actor)],
        editable_stages=[s.value for s in editable.ordered()],
        elevated=editable.elevated,
        allowed_targets=sorted(s.value for s in allowed_targets(ApplicationStatus(application.status))),
    )


# ---------------------------------------------------------------------------
# POST /api/applications — submit a permit application or intent
# ---------------------------------------------------------------------------

@router.post("", response_model=ApplicationSummary, status_code=201)
async def submit_application(
    body: ApplicationCreate,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationSummary:
    workflow = ReviewWorkflow(db)
    application = await workflow.submit_application(
        NewApplication(
            title=body.title,
            entity_name=body.entity_name,
            activity_type=body.activity_type,
            permit_level=body.permit_level,
            kind=body.kind,
        ),
        actor,
    )
    await commit(db)
    return _summary(application)


# ---------------------------------------------------------------------------
# GET /api/applications — paginated list with filters
# ---------------------------------------------------------------------------

@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    status: str | None = Query(None),
    activity_type: str | None = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationListResponse:
    """Staff see every application; applicants only their own."""
    items, total = await ReviewWorkflow(db).list_applications(
        actor, status=status, activity_type=activity_type, page=page, size=size,
    )
    return ApplicationListResponse(
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size if total > 0 else 1,
        items=[_summary(a) for a in items],
    )


# ---------------------------------------------------------------------------
# GET /api/applications/{application_id}
# ---------------------------------------------------------------------------

@router.get("/{application_id}", response_model=ApplicationDetail)
async def get_application(
    application_id: str,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
) -> ApplicationDetail:
    workflow = ReviewWorkflow(db)
    application = await workflow.get_application(application_id, actor)
    return _detail(workflow, application, actor)


# ---------------------------------------------------------------------------
# POST /api/applications/{application_id}/reviews/{stage}
# ---------------------------------------------------------------------------

@router.post("/{application_id}/reviews/{stage}", response_model=ApplicationDetail)
async def submit_stage_review(
    application_id: str,
    stage: Stage,
    body: StageReviewRequest,
    actor: ActingUser = Depends(get_acting_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationClient = Depends(get_notifier),
) -> ApplicationDetail:
    """Save a stage's assessment and move the application to the chosen status."""
    workflow = ReviewWorkflow(db)
    submission = StageSubmission(
        assessment=body.assessment,
        proposed_action=body.proposed_action,
        target_status=body.target_status,
        remarks=body.remarks,
        documents=[doc.model_dump() for doc in body.documents],
        expected_version=body.expected_version,
    )

    application, old_status = await workflow.submit_stage_review(stage, application_id, submission, actor)
    await commit(db)

    await notifier.notify_transition(application, old_status, stage.value, actor.actor)
    return _detail(workflow, application, actor)
