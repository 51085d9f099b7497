"""Tests for application intake and the staged review handlers."""

import re

import pytest
from prometheus_client import REGISTRY as METRICS
from sqlalchemy import select

from permitflow.errors import ConflictError, NotFound, PermissionDenied, ValidationError
from permitflow.models import AuditLog
from permitflow.services.audit_service import AuditService
from permitflow.services.review_workflow import NewApplication, ReviewWorkflow, status_label
from permitflow.workflow.statuses import Stage
from tests.conftest import (
    ADMIN,
    APPLICANT,
    COMPLIANCE,
    MANAGING_DIRECTOR,
    OTHER_APPLICANT,
    REGISTRY,
    REVENUE,
    advance_to_md_review,
    registry_approve,
    review,
    settle_fees,
    submit_application,
)


def _rejections(stage: str, reason: str) -> float:
    return METRICS.get_sample_value("stage_rejections_total", {"stage": stage, "reason": reason}) or 0.0


# ── Intake ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSubmitApplication:
    async def test_submit_permit(self, db_session):
        application = await submit_application(db_session, permit_level="2")
        assert re.match(r"^APP-[0-9A-F]{8}$", application.application_id)
        assert application.status == "submitted"
        assert application.permit_level == "Level 2"
        assert application.applicant_id == APPLICANT.user_id
        assert application.version == 1

        entries = await AuditService(db_session).get_entries(resource_id=application.application_id)
        assert [e.event_type for e in entries] == ["application_submitted"]

    async def test_submit_intent(self, db_session):
        application = await ReviewWorkflow(db_session).submit_application(
            NewApplication(
                title="Intent to operate a fish cannery",
                entity_name="Madang Tuna Ltd",
                activity_type="Fish  Processing",
                permit_level="Level 2",
                kind="intent",
            ),
            APPLICANT,
        )
        assert application.kind == "intent"
        assert application.activity_type == "Fish Processing"

    async def test_missing_fields(self, db_session):
        with pytest.raises(ValidationError) as exc:
            await ReviewWorkflow(db_session).submit_application(
                NewApplication(title=" ", entity_name="", activity_type="Mining", permit_level="Level 2",
                               kind="licence"),
                APPLICANT,
            )
        assert exc.value.errors == [
            "title is required",
            "entity_name is required",
            "kind must be one of ['permit', 'intent']",
        ]


# ── Stage handlers ───────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestStageReview:
    async def test_registry_approves(self, db_session):
        application = await submit_application(db_session)
        workflow = ReviewWorkflow(db_session)
        await workflow.submit_registry_review(application.application_id, review("under_review"), REGISTRY)
        updated, old_status = await workflow.submit_stage_review(
            Stage.REGISTRY,
            application.application_id,
            review("registry_approved", assessment="ok", proposed_action="approve"),
            REGISTRY,
        )
        assert updated.status == "registry_approved"
        assert updated.registry_assessment == "ok"
        assert updated.registry_proposed_action == "approve"
        assert updated.registry_reviewed_by == REGISTRY.user_id
        assert updated.registry_reviewed_at is not None
        assert old_status == "under_review"

    async def test_compliance_cannot_use_registry_handler(self, db_session):
        application = await submit_application(db_session)
        before = _rejections("registry", "permission_denied")
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_registry_review(
                application.application_id, review("under_review"), COMPLIANCE,
            )
        await db_session.refresh(application)
        assert application.status == "submitted"
        assert application.registry_assessment is None
        assert _rejections("registry", "permission_denied") == before + 1

    async def test_applicant_cannot_review(self, db_session):
        application = await submit_application(db_session)
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_registry_review(
                application.application_id, review("under_review"), APPLICANT,
            )

    async def test_admin_may_edit_any_stage(self, db_session):
        application = await submit_application(db_session)
        updated = await ReviewWorkflow(db_session).submit_registry_review(
            application.application_id, review("under_review"), ADMIN,
        )
        assert updated.status == "under_review"

    async def test_clarification_loop(self, db_session):
        application = await submit_application(db_session)
        workflow = ReviewWorkflow(db_session)
        app_id = application.application_id
        await workflow.submit_registry_review(app_id, review("under_review"), REGISTRY)
        await workflow.submit_registry_review(
            app_id, review("requires_clarification", remarks="Site plan missing"), REGISTRY,
        )
        updated = await workflow.submit_registry_review(app_id, review("under_review"), REGISTRY)
        assert updated.status == "under_review"
        assert updated.registry_remarks is None

    async def test_invalid_transition(self, db_session):
        application = await submit_application(db_session)
        with pytest.raises(ConflictError, match="Invalid status transition"):
            await ReviewWorkflow(db_session).submit_registry_review(
                application.application_id, review("registry_approved"), REGISTRY,
            )

    async def test_unknown_application(self, db_session):
        with pytest.raises(NotFound):
            await ReviewWorkflow(db_session).submit_registry_review("APP-00000000", review("under_review"), REGISTRY)

    async def test_target_outside_stage(self, db_session):
        application = await submit_application(db_session)
        with pytest.raises(ValidationError) as exc:
            await ReviewWorkflow(db_session).submit_registry_review(
                application.application_id, review("approved"), REGISTRY,
            )
        assert "approved is not a registry outcome" in exc.value.errors[0]

    async def test_documents_need_name_and_path(self, db_session):
        application = await submit_application(db_session)
        submission = review("under_review", documents=[
            {"name": "Site plan", "path": "applications/site-plan.pdf"},
            {"name": "EIS"},
        ])
        with pytest.raises(ValidationError) as exc:
            await ReviewWorkflow(db_session).submit_registry_review(application.application_id, submission, REGISTRY)
        assert exc.value.errors == ["documents[1] must have a name and a path"]

    async def test_documents_are_stored(self, db_session):
        application = await submit_application(db_session)
        doc = {"name": "Site plan", "path": "applications/site-plan.pdf"}
        updated = await ReviewWorkflow(db_session).submit_registry_review(
            application.application_id, review("under_review", documents=[doc]), REGISTRY,
        )
        assert updated.registry_documents == [doc]


@pytest.mark.asyncio
class TestCheckOrder:
    async def test_permission_before_validation(self, db_session):
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_registry_review(
                "APP-00000000", review("", assessment="", proposed_action=""), COMPLIANCE,
            )

    async def test_validation_before_load(self, db_session):
        with pytest.raises(ValidationError) as exc:
            await ReviewWorkflow(db_session).submit_registry_review(
                "APP-00000000", review("", assessment="  ", proposed_action=""), REGISTRY,
            )
        assert exc.value.errors == [
            "assessment is required",
            "proposed_action is required",
            "target_status is required",
        ]

    async def test_transition_before_payment_gate(self, db_session):
        application = await submit_application(db_session)
        with pytest.raises(ConflictError, match="Invalid status transition"):
            await ReviewWorkflow(db_session).submit_compliance_review(
                application.application_id, review("compliance_review"), ADMIN,
            )

    async def test_stale_version(self, db_session):
        application = await submit_application(db_session)
        workflow = ReviewWorkflow(db_session)
        await workflow.submit_registry_review(
            application.application_id, review("under_review", expected_version=1), REGISTRY,
        )
        with pytest.raises(ConflictError) as exc:
            await workflow.submit_registry_review(
                application.application_id, review("registry_approved", expected_version=1), REGISTRY,
            )
        assert exc.value.details == {"current_version": 2}
        assert application.status == "under_review"


@pytest.mark.asyncio
class TestStageOwnership:
    async def test_registry_cannot_reject_at_md_review(self, db_session, fee_schedule):
        application = await advance_to_md_review(db_session)
        version = application.version
        before = _rejections("registry", "permission_denied")
        with pytest.raises(PermissionDenied) as exc:
            await ReviewWorkflow(db_session).submit_registry_review(
                application.application_id, review("rejected", assessment="overridden"), REGISTRY,
            )
        assert exc.value.details == {"current_status": "md_review", "owning_stage": "md"}
        assert _rejections("registry", "permission_denied") == before + 1

        await db_session.refresh(application)
        assert application.status == "md_review"
        assert application.registry_assessment == "Application documents reviewed and complete"
        assert application.version == version

    async def test_md_cannot_reject_under_registry_review(self, db_session):
        application = await submit_application(db_session)
        await ReviewWorkflow(db_session).submit_registry_review(
            application.application_id, review("under_review"), REGISTRY,
        )
        await db_session.commit()
        version = application.version
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_md_review(
                application.application_id, review("rejected"), MANAGING_DIRECTOR,
            )

        await db_session.refresh(application)
        assert application.status == "under_review"
        assert application.md_assessment is None
        assert application.md_reviewed_by is None
        assert application.version == version

    async def test_compliance_waits_for_registry(self, db_session):
        application = await submit_application(db_session)
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_compliance_review(
                application.application_id, review("compliance_review"), COMPLIANCE,
            )

    async def test_ownership_checked_before_version(self, db_session, fee_schedule):
        application = await advance_to_md_review(db_session)
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_registry_review(
                application.application_id, review("rejected", expected_version=1), REGISTRY,
            )

    async def test_admin_may_act_out_of_stage(self, db_session):
        application = await submit_application(db_session)
        workflow = ReviewWorkflow(db_session)
        await workflow.submit_registry_review(application.application_id, review("under_review"), REGISTRY)
        updated = await workflow.submit_md_review(application.application_id, review("rejected"), ADMIN)
        assert updated.status == "rejected"
        assert updated.md_reviewed_by == ADMIN.user_id

    async def test_final_status_is_a_conflict(self, db_session, fee_schedule):
        application = await advance_to_md_review(db_session)
        workflow = ReviewWorkflow(db_session)
        await workflow.submit_md_review(application.application_id, review("approved"), MANAGING_DIRECTOR)
        with pytest.raises(ConflictError, match="Invalid status transition"):
            await workflow.submit_md_review(application.application_id, review("rejected"), MANAGING_DIRECTOR)


# ── Payment gate ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestPaymentGate:
    async def test_compliance_blocked_without_invoice(self, db_session, fee_schedule):
        application = await submit_application(db_session)
        await registry_approve(db_session, application.application_id)
        with pytest.raises(ConflictError) as exc:
            await ReviewWorkflow(db_session).submit_compliance_review(
                application.application_id, review("compliance_review"), COMPLIANCE,
            )
        assert exc.value.details["payment_status"] is None
        await db_session.refresh(application)
        assert application.status == "registry_approved"
        assert application.compliance_assessment is None

    async def test_compliance_allowed_once_paid(self, db_session, fee_schedule):
        application = await submit_application(db_session)
        await registry_approve(db_session, application.application_id)
        await settle_fees(db_session, application.application_id)
        updated = await ReviewWorkflow(db_session).submit_compliance_review(
            application.application_id, review("compliance_review"), COMPLIANCE,
        )
        assert updated.status == "compliance_review"

    async def test_full_review_path(self, db_session, fee_schedule):
        application = await submit_application(db_session)
        app_id = application.application_id
        workflow = ReviewWorkflow(db_session)
        await registry_approve(db_session, app_id)
        await settle_fees(db_session, app_id)
        await workflow.submit_compliance_review(app_id, review("compliance_review"), COMPLIANCE)
        await workflow.submit_compliance_review(app_id, review("compliance_issues"), COMPLIANCE)
        await workflow.submit_compliance_review(app_id, review("compliance_review"), COMPLIANCE)
        await workflow.submit_compliance_review(app_id, review("compliance_approved"), COMPLIANCE)
        await workflow.submit_md_review(app_id, review("md_review"), MANAGING_DIRECTOR)
        updated = await workflow.submit_md_review(
            app_id, review("approved_with_conditions", remarks="Quarterly water sampling"), MANAGING_DIRECTOR,
        )
        assert updated.status == "approved_with_conditions"
        assert updated.md_remarks == "Quarterly water sampling"
        assert status_label(updated.status) == "Approved with Conditions"

        audit = AuditService(db_session)
        assert await audit.get_entry_count("status_changed") == 8
        integrity = await audit.verify_chain_integrity()
        assert integrity["valid"]
        assert integrity["entries_checked"] == await audit.get_entry_count()

    async def test_revenue_staff_cannot_review(self, db_session, fee_schedule):
        application = await submit_application(db_session)
        with pytest.raises(PermissionDenied):
            await ReviewWorkflow(db_session).submit_stage_review(
                Stage.REGISTRY, application.application_id, review("under_review"), REVENUE,
            )


# ── Read models ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestReadModels:
    async def test_review_tabs(self, db_session):
        application = await submit_application(db_session)
        workflow = ReviewWorkflow(db_session)
        await workflow.submit_registry_review(application.application_id, review("under_review"), REGISTRY)

        tabs = workflow.review_tabs(application, REGISTRY)
        assert [t["stage"] for t in tabs] == ["registry", "compliance", "md"]
        assert [t["editable"] for t in tabs] == [True, False, False]
        assert tabs[0]["assessment"] == "Application documents reviewed and complete"
        assert tabs[0]["reviewed_by"] == REGISTRY.user_id
        assert tabs[0]["reviewed_at"] is not None
        assert tabs[1]["assessment"] is None
        assert "compliance_approved" in tabs[1]["targets"]

        assert all(t["editable"] for t in workflow.review_tabs(application, ADMIN))
        assert not any(t["editable"] for t in workflow.review_tabs(application, APPLICANT))

    async def test_applicants_only_see_their_own(self, db_session):
        application = await submit_application(db_session)
        workflow = ReviewWorkflow(db_session)
        assert (await workflow.get_application(application.application_id, APPLICANT)).id == application.id
        assert (await workflow.get_application(application.application_id, COMPLIANCE)).id == application.id
        with pytest.raises(NotFound):
            await workflow.get_application(application.application_id, OTHER_APPLICANT)

    async def test_list_applications(self, db_session):
        first = await submit_application(db_session)
        await submit_application(db_session, activity_type="Quarrying")
        await submit_application(db_session, actor=OTHER_APPLICANT)
        await ReviewWorkflow(db_session).submit_registry_review(
            first.application_id, review("under_review"), REGISTRY,
        )
        workflow = ReviewWorkflow(db_session)

        items, total = await workflow.list_applications(REGISTRY)
        assert total == 3
        assert len(items) == 3

        items, total = await workflow.list_applications(APPLICANT)
        assert total == 2
        assert {a.applicant_id for a in items} == {APPLICANT.user_id}

        items, total = await workflow.list_applications(REGISTRY, status="under_review")
        assert [a.application_id for a in items] == [first.application_id]

        items, total = await workflow.list_applications(REGISTRY, activity_type="quarrying")
        assert total == 1

        items, total = await workflow.list_applications(REGISTRY, page=2, size=2)
        assert total == 3
        assert len(items) == 1

    async def test_list_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            await ReviewWorkflow(db_session).list_applications(REGISTRY, status="pending")

    async def test_audit_entries_are_chained(self, db_session):
        await registry_approve(db_session, (await submit_application(db_session)).application_id)
        result = await db_session.execute(select(AuditLog).order_by(AuditLog.id))
        entries = list(result.scalars())
        assert entries[0].previous_hash is None
        for prev, entry in zip(entries, entries[1:]):
            assert entry.previous_hash == prev.current_hash
        assert entries[-1].details == {
            "stage": "registry", "old_status": "under_review", "new_status": "registry_approved",
        }
