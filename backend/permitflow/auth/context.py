"""
ActingUser — the "who is asking and what may they touch" abstraction.

Built once per request from the identity token and then passed explicitly
to every resolver and stage handler. Nothing in the services layer reads
the current user from ambient state.
"""

from __future__ import annotations

from dataclasses import dataclass

from permitflow.auth import permissions
from permitflow.auth.permissions import EditableStages
from permitflow.errors import PermissionDenied
from permitflow.workflow.statuses import Stage


@dataclass(frozen=True)
class ActingUser:
    user_id: str = "anonymous"
    user_type: str = "public"
    staff_unit: str | None = None
    staff_position: str | None = None
    email: str | None = None

    @property
    def editable_stages(self) -> EditableStages:
        return permissions.resolve_editable_stages(
            self.staff_unit, self.staff_position, self.user_type,
        )

    @property
    def elevated(self) -> bool:
        return permissions.is_elevated(self.user_type)

    def owns_stage(self, stage: Stage) -> bool:
        if stage is Stage.DIRECTORATE:
            return self.can_decide_directorate
        return self.editable_stages.can_edit(stage)

    @property
    def can_decide_directorate(self) -> bool:
        return permissions.can_decide_directorate(self.staff_unit, self.staff_position, self.user_type)

    @property
    def can_sign_letters(self) -> bool:
        return permissions.can_sign_letters(self.staff_unit, self.staff_position, self.user_type)

    @property
    def can_manage_payments(self) -> bool:
        return permissions.can_manage_payments(self.staff_unit, self.staff_position, self.user_type)

    @property
    def is_staff(self) -> bool:
        return self.elevated or self.staff_unit is not None or self.staff_position is not None

    def require_stage(self, stage: Stage) -> None:
        """Raise PermissionDenied unless the caller owns `stage`."""
        if not self.owns_stage(stage):
            raise PermissionDenied(
                f"{self.actor} may not edit the {stage.value} stage",
                details={"stage": stage.value},
            )

    def require_payments(self) -> None:
        if not self.can_manage_payments:
            raise PermissionDenied(f"{self.actor} may not manage fees or payments")

    def require_letter_signing(self) -> None:
        if not self.can_sign_letters:
            raise PermissionDenied(f"{self.actor} may not sign approval letters")

    def require_staff(self) -> None:
        if not self.is_staff:
            raise PermissionDenied(f"{self.actor} is not a staff member")

    @property
    def actor(self) -> str:
        """Identity string for audit logging."""
        label = self.staff_position or self.staff_unit or self.user_type
        return f"{label}:{self.user_id}"
