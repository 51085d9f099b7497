"""
Review Workflow Service

Applications move Registry -> Compliance -> Managing Director, each stage
writing its own assessment payload and moving the status along the
transition table. Every stage submission runs the same checks, in order:

    1. authorization      PermissionDenied, nothing read
    2. field validation   ValidationError, store not reached
    3. load               NotFound
       stage ownership    PermissionDenied unless the application sits in this stage
    4. expected_version   ConflictError on a stale form
    5. transition table   ConflictError
    6. payment gate       ConflictError when entering compliance_review / md_review unpaid
    7. write              stage payload + status + audit entry, one flush

Notifications are the caller's job, after the unit of work commits.
"""

import logging
from dataclasses import dataclass, field
from uuid import uuid4

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.auth.context import ActingUser
from permitflow.database import utcnow
from permitflow.errors import ConflictError, NotFound, PermissionDenied, ValidationError, WorkflowError
from permitflow.middleware.metrics import stage_rejections_total, stage_transitions_total
from permitflow.models import Application
from permitflow.services import records
from permitflow.services.audit_service import AuditService
from permitflow.services.fee_calculator import normalize_level
from permitflow.services.payment_tracker import PaymentTracker
from permitflow.workflow.statuses import (
    PAYMENT_GATED_STATUSES,
    REVIEW_STAGES,
    STAGE_TARGETS,
    STATUS_LABELS,
    ApplicationStatus,
    Stage,
    check_transition,
    owning_stage,
    parse_status,
)

logger = logging.getLogger(__name__)

APPLICATION_KINDS = ("permit", "intent")


@dataclass
class StageSubmission:
    assessment: str
    proposed_action: str
    target_status: str
    remarks: str | None = None
    documents: list[dict] = field(default_factory=list)
    expected_version: int | None = None


@dataclass
class NewApplication:
    title: str
    entity_name: str
    activity_type: str
    permit_level: str
    kind: str = "permit"


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def validate_submission(stage: Stage, submission: StageSubmission) -> ApplicationStatus:
    """Check required fields and the stage's target set. Returns the parsed target."""
    errors = []
    if _blank(submission.assessment):
        errors.append("assessment is required")
    if _blank(submission.proposed_action):
        errors.append("proposed_action is required")

    target = None
    if _blank(submission.target_status):
        errors.append("target_status is required")
    else:
        try:
            target = parse_status(submission.target_status)
        except ValidationError as e:
            errors.extend(e.errors)
        else:
            if target not in STAGE_TARGETS[stage]:
                errors.append(
                    f"{target.value} is not a {stage.value} outcome; expected one of "
                    f"{sorted(s.value for s in STAGE_TARGETS[stage])}"
                )

    for i, doc in enumerate(submission.documents or []):
        if not isinstance(doc, dict) or _blank(doc.get("name")) or _blank(doc.get("path")):
            errors.append(f"documents[{i}] must have a name and a path")

    if errors:
        raise ValidationError(
            f"Invalid {stage.value} review: {'; '.join(errors)}",
            errors=errors,
            details={"stage": stage.value},
        )
    return target


class ReviewWorkflow:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)
        self.payments = PaymentTracker(session)

    # ── Intake ───────────────────────────────────────────────────────────

    async def submit_application(self, data: NewApplication, actor: ActingUser) -> Application:
        errors = [
            f"{name} is required"
            for name in ("title", "entity_name", "activity_type", "permit_level")
            if _blank(getattr(data, name))
        ]
        if data.kind not in APPLICATION_KINDS:
            errors.append(f"kind must be one of {list(APPLICATION_KINDS)}")
        if errors:
            raise ValidationError(f"Invalid application: {'; '.join(errors)}", errors=errors)

        application = Application(
            application_id=f"APP-{uuid4().hex[:8].upper()}",
            kind=data.kind,
            title=data.title.strip(),
            entity_name=data.entity_name.strip(),
            applicant_id=actor.user_id,
            activity_type=" ".join(data.activity_type.split()),
            permit_level=normalize_level(data.permit_level),
            status=ApplicationStatus.SUBMITTED.value,
        )
        self.session.add(application)
        await records.flush(self.session)

        await self.audit.log_application_submitted(application.application_id, application.kind, actor.actor)
        logger.info("Application %s submitted by %s", application.application_id, actor.actor)
        return application

    # ── Stage handlers ───────────────────────────────────────────────────

    async def submit_stage_review(
        self,
        stage: Stage,
        application_id: str,
        submission: StageSubmission,
        actor: ActingUser,
    ) -> tuple[Application, str]:
        """Returns the updated application and the status it moved from."""
        try:
            return await self._submit(stage, application_id, submission, actor)
        except WorkflowError as e:
            stage_rejections_total.labels(stage=stage.value, reason=e.error_code).inc()
            logger.info("%s review of %s refused for %s: %s", stage.value, application_id, actor.actor, e.message)
            raise

    async def _submit(
        self,
        stage: Stage,
        application_id: str,
        submission: StageSubmission,
        actor: ActingUser,
    ) -> tuple[Application, str]:
        actor.require_stage(stage)
        if stage not in REVIEW_STAGES:
            raise ValidationError(
                f"{stage.value} has no review payload",
                errors=[f"stage must be one of {[s.value for s in REVIEW_STAGES]}"],
            )
        target = validate_submission(stage, submission)

        application = await records.get_application(self.session, application_id)
        current = ApplicationStatus(application.status)
        owner = owning_stage(current)
        if owner is not None and owner != stage and not actor.elevated:
            raise PermissionDenied(
                f"Application {application_id} is {current.value} and awaits the {owner.value} stage, "
                f"not {stage.value}",
                details={"current_status": current.value, "owning_stage": owner.value},
            )

        if submission.expected_version is not None and submission.expected_version != application.version:
            raise ConflictError(
                f"Application {application_id} was modified (version {application.version}, "
                f"form has {submission.expected_version}); reload and resubmit",
                details={"current_version": application.version},
            )

        check_transition(current, target)
        if target in PAYMENT_GATED_STATUSES:
            await self.payments.ensure_assessment_unblocked(application)

        prefix = stage.value
        setattr(application, f"{prefix}_assessment", submission.assessment.strip())
        setattr(application, f"{prefix}_remarks", submission.remarks)
        setattr(application, f"{prefix}_proposed_action", submission.proposed_action.strip())
        setattr(application, f"{prefix}_documents", list(submission.documents or []))
        setattr(application, f"{prefix}_reviewed_by", actor.user_id)
        setattr(application, f"{prefix}_reviewed_at", utcnow())
        application.status = target.value
        await records.flush(self.session)

        await self.audit.log_status_changed(application_id, prefix, current.value, target.value, actor.actor)
        stage_transitions_total.labels(stage=prefix, status=target.value).inc()
        logger.info(
            "Application %s: %s -> %s by %s (%s stage)",
            application_id, current.value, target.value, actor.actor, prefix,
        )
        return application, current.value

    async def submit_registry_review(self, application_id: str, submission: StageSubmission,
                                     actor: ActingUser) -> Application:
        application, _ = await self.submit_stage_review(Stage.REGISTRY, application_id, submission, actor)
        return application

    async def submit_compliance_review(self, application_id: str, submission: StageSubmission,
                                       actor: ActingUser) -> Application:
        application, _ = await self.submit_stage_review(Stage.COMPLIANCE, application_id, submission, actor)
        return application

    async def submit_md_review(self, application_id: str, submission: StageSubmission,
                               actor: ActingUser) -> Application:
        application, _ = await self.submit_stage_review(Stage.MANAGING_DIRECTOR, application_id, submission, actor)
        return application

    # ── Read models ──────────────────────────────────────────────────────

    def review_tabs(self, application: Application, actor: ActingUser) -> list[dict]:
        """One entry per review stage with its stored payload and whether `actor` may edit it."""
        editable = actor.editable_stages
        tabs = []
        for stage in REVIEW_STAGES:
            prefix = stage.value
            reviewed_at = getattr(application, f"{prefix}_reviewed_at")
            tabs.append({
                "stage": prefix,
                "editable": editable.can_edit(stage),
                "targets": sorted(s.value for s in STAGE_TARGETS[stage]),
                "assessment": getattr(application, f"{prefix}_assessment"),
                "remarks": getattr(application, f"{prefix}_remarks"),
                "proposed_action": getattr(application, f"{prefix}_proposed_action"),
                "documents": getattr(application, f"{prefix}_documents") or [],
                "reviewed_by": getattr(application, f"{prefix}_reviewed_by"),
                "reviewed_at": reviewed_at.isoformat() if reviewed_at else None,
            })
        return tabs

    async def get_application(self, application_id: str, actor: ActingUser) -> Application:
        application = await records.get_application(self.session, application_id)
        if not actor.is_staff and application.applicant_id != actor.user_id:
            # Applicants only see their own records
            raise NotFound(f"Application {application_id} not found", details={"application_id": application_id})
        return application

    async def list_applications(
        self,
        actor: ActingUser,
        status: str | None = None,
        activity_type: str | None = None,
        page: int = 1,
        size: int = 50,
    ) -> tuple[list[Application], int]:
        query = select(Application)
        count_query = select(func.count()).select_from(Application)

        filters = []
        if status:
            filters.append(Application.status == parse_status(status).value)
        if activity_type:
            filters.append(func.lower(Application.activity_type) == " ".join(activity_type.split()).lower())
        if not actor.is_staff:
            filters.append(Application.applicant_id == actor.user_id)
        for condition in filters:
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = (await self.session.execute(count_query)).scalar() or 0
        result = await self.session.execute(
            query.order_by(Application.id.desc()).offset((page - 1) * size).limit(size)
        )
        return list(result.scalars()), total


def status_label(status: str) -> str:
    try:
        return STATUS_LABELS[ApplicationStatus(status)]
    except ValueError:
        return status
