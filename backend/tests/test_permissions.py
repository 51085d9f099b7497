"""Tests for the editable-stage resolver and ActingUser capability checks."""

import pytest

from permitflow.auth.context import ActingUser
from permitflow.auth.permissions import (
    ELEVATED,
    READ_ONLY,
    can_decide_directorate,
    can_manage_payments,
    can_sign_letters,
    resolve_editable_stages,
)
from permitflow.auth.roles import StaffPosition, StaffUnit, UserType
from permitflow.errors import PermissionDenied
from permitflow.workflow.statuses import Stage
from tests.conftest import ADMIN, APPLICANT, COMPLIANCE, DIRECTORATE, MANAGING_DIRECTOR, REGISTRY, REVENUE


class TestResolveEditableStages:
    def test_registry_unit(self):
        result = resolve_editable_stages("registry", "officer", "staff")
        assert result.stages == {Stage.REGISTRY}
        assert not result.elevated
        assert result.can_edit(Stage.REGISTRY)
        assert not result.can_edit(Stage.COMPLIANCE)

    def test_compliance_unit(self):
        assert resolve_editable_stages("compliance", None, "staff").stages == {Stage.COMPLIANCE}

    def test_managing_director_position(self):
        result = resolve_editable_stages(None, "managing_director", "staff")
        assert result.stages == {Stage.MANAGING_DIRECTOR}

    def test_unit_and_position_combine(self):
        result = resolve_editable_stages("registry", "managing_director", "staff")
        assert result.ordered() == [Stage.REGISTRY, Stage.MANAGING_DIRECTOR]

    @pytest.mark.parametrize("user_type", ["admin", "super_admin", "ADMIN", UserType.SUPER_ADMIN])
    def test_elevated_user_types(self, user_type):
        result = resolve_editable_stages(None, None, user_type)
        assert result is ELEVATED
        assert result.elevated
        for stage in Stage:
            assert result.can_edit(stage)

    @pytest.mark.parametrize("unit", [None, "", "revenue", "systems", "legal"])
    def test_everyone_else_is_read_only(self, unit):
        result = resolve_editable_stages(unit, "officer", "staff")
        assert result is READ_ONLY
        assert result.read_only
        assert result.ordered() == []

    def test_public_user_is_read_only(self):
        assert resolve_editable_stages(None, None, "public").read_only

    def test_values_are_normalized(self):
        assert resolve_editable_stages(" Registry ", None, "staff").stages == {Stage.REGISTRY}
        assert resolve_editable_stages(StaffUnit.COMPLIANCE, None, UserType.STAFF).stages == {Stage.COMPLIANCE}
        assert resolve_editable_stages(None, StaffPosition.MANAGING_DIRECTOR, "staff").stages == {
            Stage.MANAGING_DIRECTOR,
        }

    def test_resolver_is_pure(self):
        first = resolve_editable_stages("compliance", "managing_director", "staff")
        second = resolve_editable_stages("compliance", "managing_director", "staff")
        assert first == second


class TestCapabilities:
    def test_directorate_decisions(self):
        assert can_decide_directorate("directorate", "director", "staff")
        assert can_decide_directorate(None, None, "admin")
        assert not can_decide_directorate("registry", "managing_director", "staff")

    def test_letter_signing(self):
        assert can_sign_letters(None, "managing_director", "staff")
        assert can_sign_letters(None, None, "super_admin")
        assert not can_sign_letters("directorate", "director", "staff")

    def test_payment_management(self):
        assert can_manage_payments("revenue", None, "staff")
        assert can_manage_payments("finance", "officer", "staff")
        assert not can_manage_payments("registry", None, "staff")


class TestActingUser:
    def test_require_stage(self):
        REGISTRY.require_stage(Stage.REGISTRY)
        with pytest.raises(PermissionDenied) as exc:
            COMPLIANCE.require_stage(Stage.REGISTRY)
        assert exc.value.details == {"stage": "registry"}

    def test_directorate_stage_follows_decision_capability(self):
        assert DIRECTORATE.owns_stage(Stage.DIRECTORATE)
        assert not MANAGING_DIRECTOR.owns_stage(Stage.DIRECTORATE)
        assert ADMIN.owns_stage(Stage.DIRECTORATE)

    def test_payment_and_letter_checks(self):
        REVENUE.require_payments()
        MANAGING_DIRECTOR.require_letter_signing()
        with pytest.raises(PermissionDenied):
            REGISTRY.require_payments()
        with pytest.raises(PermissionDenied):
            DIRECTORATE.require_letter_signing()

    def test_staff_membership(self):
        assert REGISTRY.is_staff
        assert ADMIN.is_staff
        assert not APPLICANT.is_staff
        with pytest.raises(PermissionDenied):
            APPLICANT.require_staff()

    def test_actor_label(self):
        assert MANAGING_DIRECTOR.actor == "managing_director:md-1"
        assert ActingUser(user_id="9", user_type="staff", staff_unit="registry").actor == "registry:9"
        assert APPLICANT.actor == "public:applicant-1"
