"""
Profile API — what the caller may do, for the UI to enable or disable controls.
"""

from fastapi import APIRouter, Depends

from permitflow.api.deps import get_acting_user
from permitflow.auth.context import ActingUser
from permitflow.schemas.schemas import MeResponse

router = APIRouter(prefix="/api", tags=["profile"])


@router.get("/me", response_model=MeResponse)
async def me(actor: ActingUser = Depends(get_acting_user)) -> MeResponse:
    editable = actor.editable_stages
    return MeResponse(
        user_id=actor.user_id,
        user_type=actor.user_type,
        staff_unit=actor.staff_unit,
        staff_position=actor.staff_position,
        editable_stages=[s.value for s in editable.ordered()],
        elevated=editable.elevated,
        can_decide_directorate=actor.can_decide_directorate,
        can_sign_letters=actor.can_sign_letters,
        can_manage_payments=actor.can_manage_payments,
    )
