from permitflow.auth.roles import UserType, StaffUnit, StaffPosition
from permitflow.auth.permissions import EditableStages, resolve_editable_stages
from permitflow.auth.context import ActingUser

__all__ = [
    "UserType", "StaffUnit", "StaffPosition",
    "EditableStages", "resolve_editable_stages", "ActingUser",
]
