"""
Role/permission resolver — which review tabs a profile may edit.

    resolve_editable_stages(staff_unit, staff_position, user_type) -> EditableStages

Rules:
    admin / super_admin                -> every stage (elevated)
    staff_unit == "registry"           -> registry
    staff_unit == "compliance"         -> compliance
    staff_position == "managing_director" -> md
    anything else                      -> nothing (all tabs read-only)

Unit and position rules are independent, so a registry officer who is also
the managing director gets both tabs. The functions here are pure: same
input, same output, no I/O. The UI uses the result to disable controls; the
stage handlers call the same functions before any write.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from permitflow.auth.roles import (
    ELEVATED_USER_TYPES,
    REVENUE_UNITS,
    StaffPosition,
    StaffUnit,
)
from permitflow.workflow.statuses import REVIEW_STAGES, Stage


def _norm(value: str | Enum | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    value = str(value).strip().lower()
    return value or None


@dataclass(frozen=True)
class EditableStages:
    """Result of the resolver: the stage set plus an explicit elevated flag."""

    stages: frozenset[Stage] = frozenset()
    elevated: bool = False

    def can_edit(self, stage: Stage) -> bool:
        return self.elevated or stage in self.stages

    @property
    def read_only(self) -> bool:
        return not self.elevated and not self.stages

    def ordered(self) -> list[Stage]:
        """Stages in workflow order, for display."""
        return [s for s in REVIEW_STAGES if s in self.stages]


ELEVATED = EditableStages(stages=frozenset(REVIEW_STAGES), elevated=True)
READ_ONLY = EditableStages()

_UNIT_STAGES: dict[str, Stage] = {
    StaffUnit.REGISTRY.value: Stage.REGISTRY,
    StaffUnit.COMPLIANCE.value: Stage.COMPLIANCE,
}

_POSITION_STAGES: dict[str, Stage] = {
    StaffPosition.MANAGING_DIRECTOR.value: Stage.MANAGING_DIRECTOR,
}


def is_elevated(user_type: str | Enum | None) -> bool:
    return _norm(user_type) in ELEVATED_USER_TYPES


def resolve_editable_stages(
    staff_unit: str | Enum | None,
    staff_position: str | Enum | None,
    user_type: str | Enum | None,
) -> EditableStages:
    if is_elevated(user_type):
        return ELEVATED

    stages: set[Stage] = set()
    unit_stage = _UNIT_STAGES.get(_norm(staff_unit) or "")
    if unit_stage is not None:
        stages.add(unit_stage)
    position_stage = _POSITION_STAGES.get(_norm(staff_position) or "")
    if position_stage is not None:
        stages.add(position_stage)

    if not stages:
        return READ_ONLY
    return EditableStages(stages=frozenset(stages))


# ── Capabilities outside the review tabs ────────────────────────────────────

def can_decide_directorate(staff_unit, staff_position, user_type) -> bool:
    """Directorate approvals: approve, reject, revoke, cancel."""
    return is_elevated(user_type) or _norm(staff_unit) == StaffUnit.DIRECTORATE.value


def can_sign_letters(staff_unit, staff_position, user_type) -> bool:
    """Final approval letters are executed by the managing director."""
    return is_elevated(user_type) or _norm(staff_position) == StaffPosition.MANAGING_DIRECTOR.value


def can_manage_payments(staff_unit, staff_position, user_type) -> bool:
    """Fee assessment, payment recording and waivers."""
    return is_elevated(user_type) or _norm(staff_unit) in REVENUE_UNITS
