"""
Directorate Approval Service

Final sign-off after the Managing Director review. One approval record per
application:

    pending  -> approved | rejected
    approved -> revoked | cancelled

The application status follows each decision through the normal transition
table in the same unit of work. When the Managing Director already recorded
the outcome through the MD stage, the decision only brings the record in line
with the application. The approval letter can only be signed once the record
is approved.
"""

import logging
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from permitflow.auth.context import ActingUser
from permitflow.database import utcnow
from permitflow.errors import ConflictError, ValidationError
from permitflow.middleware.metrics import stage_transitions_total
from permitflow.models import Application, DirectorateApproval
from permitflow.services import records
from permitflow.services.audit_service import AuditService
from permitflow.workflow.statuses import ApplicationStatus, Stage, check_transition

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "normal", "high", "urgent")

APPROVAL_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset({"revoked", "cancelled"}),
    "rejected": frozenset(),
    "revoked": frozenset(),
    "cancelled": frozenset(),
}

# Application statuses an approval can be opened from
OPENABLE_STATUSES = frozenset({
    ApplicationStatus.MD_REVIEW, ApplicationStatus.APPROVED, ApplicationStatus.APPROVED_WITH_CONDITIONS,
})

# Application statuses that already carry a directorate decision
DECISION_OUTCOMES: dict[str, frozenset[ApplicationStatus]] = {
    "approved": frozenset({ApplicationStatus.APPROVED, ApplicationStatus.APPROVED_WITH_CONDITIONS}),
    "rejected": frozenset({ApplicationStatus.REJECTED}),
    "revoked": frozenset({ApplicationStatus.REVOKED}),
    "cancelled": frozenset({ApplicationStatus.CANCELLED}),
}


class DirectorateService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def open_approval(
        self,
        application_id: str,
        actor: ActingUser,
        priority: str = "normal",
        notes: str | None = None,
    ) -> DirectorateApproval:
        """Send an application under MD review, or already approved by the MD, to the directorate."""
        actor.require_stage(Stage.MANAGING_DIRECTOR)
        if priority not in PRIORITIES:
            raise ValidationError(
                f"Unknown priority: {priority!r}",
                errors=[f"priority must be one of {list(PRIORITIES)}"],
            )

        application = await records.get_application(self.session, application_id)
        if ApplicationStatus(application.status) not in OPENABLE_STATUSES:
            raise ConflictError(
                f"Application {application_id} is {application.status}; only applications under "
                "Managing Director review or approved by the Managing Director go to the directorate",
                details={"current_status": application.status},
            )

        existing = await self._find_for(application)
        if existing is not None:
            raise ConflictError(
                f"Application {application_id} already has directorate approval {existing.approval_id}",
                details={"approval_id": existing.approval_id},
            )

        approval = DirectorateApproval(
            approval_id=f"DIR-{uuid4().hex[:8].upper()}",
            application_id=application.id,
            approval_status="pending",
            priority=priority,
            notes=notes,
            submitted_by=actor.user_id,
        )
        self.session.add(approval)
        await records.flush(self.session)

        await self.audit.log_event(
            event_type="directorate_submitted",
            actor=actor.actor,
            action=f"Application {application_id} sent to directorate as {approval.approval_id}",
            resource_type="directorate_approval",
            resource_id=approval.approval_id,
            details={"application_id": application_id, "priority": priority},
        )
        logger.info("Directorate approval %s opened for %s", approval.approval_id, application_id)
        return approval

    async def decide(
        self,
        approval_id: str,
        status: str,
        actor: ActingUser,
        notes: str | None = None,
    ) -> tuple[DirectorateApproval, Application, str]:
        """Returns the approval, its application and the application status before the decision."""
        actor.require_stage(Stage.DIRECTORATE)
        if status not in APPROVAL_TRANSITIONS or status == "pending":
            raise ValidationError(
                f"Unknown directorate decision: {status!r}",
                errors=["status must be one of ['approved', 'cancelled', 'rejected', 'revoked']"],
            )

        approval = await records.get_approval(self.session, approval_id)
        allowed = APPROVAL_TRANSITIONS[approval.approval_status]
        if status not in allowed:
            raise ConflictError(
                f"Directorate approval {approval_id} is {approval.approval_status} and cannot become {status}",
                details={"current_status": approval.approval_status, "target_status": status},
            )

        application = await self.session.get(Application, approval.application_id)
        old_app_status = ApplicationStatus(application.status)
        new_app_status = ApplicationStatus(status)
        already_applied = old_app_status in DECISION_OUTCOMES[status]
        if not already_applied:
            check_transition(old_app_status, new_app_status)

        old_status = approval.approval_status
        approval.approval_status = status
        approval.reviewed_by = actor.user_id
        approval.reviewed_at = utcnow()
        if notes:
            approval.notes = notes
        if not already_applied:
            application.status = new_app_status.value
        await records.flush(self.session)

        await self.audit.log_directorate_decision(approval_id, old_status, status, actor.actor)
        if not already_applied:
            await self.audit.log_status_changed(
                application.application_id, Stage.DIRECTORATE.value,
                old_app_status.value, new_app_status.value, actor.actor,
            )
        stage_transitions_total.labels(stage=Stage.DIRECTORATE.value, status=status).inc()
        logger.info(
            "Directorate %s: %s -> %s, application %s now %s",
            approval_id, old_status, status, application.application_id, application.status,
        )
        return approval, application, old_app_status.value

    async def mark_letter_signed(
        self,
        approval_id: str,
        actor: ActingUser,
        envelope_id: str | None = None,
    ) -> DirectorateApproval:
        actor.require_letter_signing()
        approval = await records.get_approval(self.session, approval_id)
        if approval.approval_status != "approved":
            raise ConflictError(
                f"Approval letter for {approval_id} can only be signed once approved "
                f"(currently {approval.approval_status})",
                details={"approval_status": approval.approval_status},
            )
        if approval.letter_signed:
            raise ConflictError(
                f"Approval letter for {approval_id} was already signed by {approval.letter_signed_by}",
            )

        approval.letter_signed = True
        approval.letter_signed_at = utcnow()
        approval.letter_signed_by = actor.user_id
        approval.signature_envelope_id = envelope_id
        await records.flush(self.session)

        await self.audit.log_event(
            event_type="letter_signed",
            actor=actor.actor,
            action=f"Approval letter for {approval_id} signed",
            resource_type="directorate_approval",
            resource_id=approval_id,
            details={"envelope_id": envelope_id},
        )
        return approval

    async def _find_for(self, application: Application) -> DirectorateApproval | None:
        result = await self.session.execute(
            select(DirectorateApproval).where(DirectorateApproval.application_id == application.id)
        )
        return result.scalar_one_or_none()

    async def get_for_application(self, application_id: str) -> DirectorateApproval | None:
        application = await records.get_application(self.session, application_id)
        return await self._find_for(application)

    async def list_approvals(
        self,
        approval_status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[DirectorateApproval]:
        query = select(DirectorateApproval).order_by(DirectorateApproval.id.desc())
        if approval_status:
            query = query.where(DirectorateApproval.approval_status == approval_status)
        result = await self.session.execute(query.offset(offset).limit(limit))
        return list(result.scalars())
