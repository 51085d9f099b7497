"""
Profile attributes issued by the identity provider.

A user's reach in the workflow is decided by three attributes on their
profile, not by a single role string:

    user_type       public | staff | admin | super_admin
    staff_unit      registry | compliance | revenue | finance | directorate | ...
    staff_position  officer | manager | director | managing_director | ...

Unknown values are kept as plain strings so a new unit created upstream does
not break token decoding; it simply resolves to no editable stages.
"""

from enum import Enum


class UserType(str, Enum):
    PUBLIC = "public"
    STAFF = "staff"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class StaffUnit(str, Enum):
    REGISTRY = "registry"
    COMPLIANCE = "compliance"
    REVENUE = "revenue"
    FINANCE = "finance"
    DIRECTORATE = "directorate"
    SYSTEMS = "systems"


class StaffPosition(str, Enum):
    OFFICER = "officer"
    MANAGER = "manager"
    DIRECTOR = "director"
    MANAGING_DIRECTOR = "managing_director"


ELEVATED_USER_TYPES: frozenset[str] = frozenset({UserType.ADMIN.value, UserType.SUPER_ADMIN.value})

# Units allowed to assess fees and record payments
REVENUE_UNITS: frozenset[str] = frozenset({StaffUnit.REVENUE.value, StaffUnit.FINANCE.value})
