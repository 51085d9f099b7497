"""
Status vocabulary for permit applications and intent registrations.

One closed enum, one transition table. Every status change in the system is
checked against VALID_TRANSITIONS here and nowhere else.

    submitted -> under_review
    under_review -> registry_approved | requires_clarification | rejected
    requires_clarification -> under_review
    registry_approved -> compliance_review
    compliance_review -> compliance_approved | compliance_issues
    compliance_issues -> compliance_review
    compliance_approved -> md_review
    md_review -> approved | approved_with_conditions | deferred | rejected
    deferred -> md_review
    approved -> revoked | cancelled          (directorate only)
"""

from enum import Enum

from permitflow.errors import ConflictError, ValidationError


class ApplicationStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REGISTRY_APPROVED = "registry_approved"
    REQUIRES_CLARIFICATION = "requires_clarification"
    COMPLIANCE_REVIEW = "compliance_review"
    COMPLIANCE_APPROVED = "compliance_approved"
    COMPLIANCE_ISSUES = "compliance_issues"
    MD_REVIEW = "md_review"
    APPROVED = "approved"
    APPROVED_WITH_CONDITIONS = "approved_with_conditions"
    DEFERRED = "deferred"
    REJECTED = "rejected"
    REVOKED = "revoked"
    CANCELLED = "cancelled"


class Stage(str, Enum):
    REGISTRY = "registry"
    COMPLIANCE = "compliance"
    MANAGING_DIRECTOR = "md"
    DIRECTORATE = "directorate"


# Stages that have a review tab with an assessment payload
REVIEW_STAGES: tuple[Stage, ...] = (Stage.REGISTRY, Stage.COMPLIANCE, Stage.MANAGING_DIRECTOR)

S = ApplicationStatus

VALID_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.SUBMITTED: frozenset({S.UNDER_REVIEW}),
    S.UNDER_REVIEW: frozenset({S.REGISTRY_APPROVED, S.REQUIRES_CLARIFICATION, S.REJECTED}),
    S.REQUIRES_CLARIFICATION: frozenset({S.UNDER_REVIEW}),
    S.REGISTRY_APPROVED: frozenset({S.COMPLIANCE_REVIEW}),
    S.COMPLIANCE_REVIEW: frozenset({S.COMPLIANCE_APPROVED, S.COMPLIANCE_ISSUES}),
    S.COMPLIANCE_ISSUES: frozenset({S.COMPLIANCE_REVIEW}),
    S.COMPLIANCE_APPROVED: frozenset({S.MD_REVIEW}),
    S.MD_REVIEW: frozenset({S.APPROVED, S.APPROVED_WITH_CONDITIONS, S.DEFERRED, S.REJECTED}),
    S.DEFERRED: frozenset({S.MD_REVIEW}),
    S.APPROVED: frozenset({S.REVOKED, S.CANCELLED}),
    S.APPROVED_WITH_CONDITIONS: frozenset(),
    S.REJECTED: frozenset(),
    S.REVOKED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATUSES: frozenset[ApplicationStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

# Closed set of statuses each stage handler is allowed to set
STAGE_TARGETS: dict[Stage, frozenset[ApplicationStatus]] = {
    Stage.REGISTRY: frozenset({
        S.UNDER_REVIEW, S.REGISTRY_APPROVED, S.REQUIRES_CLARIFICATION, S.REJECTED,
    }),
    Stage.COMPLIANCE: frozenset({
        S.COMPLIANCE_REVIEW, S.COMPLIANCE_APPROVED, S.COMPLIANCE_ISSUES,
    }),
    Stage.MANAGING_DIRECTOR: frozenset({
        S.MD_REVIEW, S.APPROVED, S.APPROVED_WITH_CONDITIONS, S.DEFERRED, S.REJECTED,
    }),
    Stage.DIRECTORATE: frozenset({
        S.APPROVED, S.REJECTED, S.REVOKED, S.CANCELLED,
    }),
}

# Which review stage an application sitting in each status belongs to. Statuses
# absent here (final outcomes) belong to no review stage.
STATUS_OWNERS: dict[ApplicationStatus, Stage] = {
    S.SUBMITTED: Stage.REGISTRY,
    S.UNDER_REVIEW: Stage.REGISTRY,
    S.REQUIRES_CLARIFICATION: Stage.REGISTRY,
    S.REGISTRY_APPROVED: Stage.COMPLIANCE,
    S.COMPLIANCE_REVIEW: Stage.COMPLIANCE,
    S.COMPLIANCE_ISSUES: Stage.COMPLIANCE,
    S.COMPLIANCE_APPROVED: Stage.MANAGING_DIRECTOR,
    S.MD_REVIEW: Stage.MANAGING_DIRECTOR,
    S.DEFERRED: Stage.MANAGING_DIRECTOR,
}

# Entering these statuses starts assessment work and requires settled fees
PAYMENT_GATED_STATUSES: frozenset[ApplicationStatus] = frozenset({S.COMPLIANCE_REVIEW, S.MD_REVIEW})

STATUS_LABELS: dict[ApplicationStatus, str] = {
    S.SUBMITTED: "Submitted",
    S.UNDER_REVIEW: "Under Review",
    S.REGISTRY_APPROVED: "Registry Approved - Forward to Compliance",
    S.REQUIRES_CLARIFICATION: "Requires Clarification",
    S.COMPLIANCE_REVIEW: "Compliance Review",
    S.COMPLIANCE_APPROVED: "Compliance Approved - Forward to MD",
    S.COMPLIANCE_ISSUES: "Compliance Issues Found",
    S.MD_REVIEW: "Managing Director Review",
    S.APPROVED: "Approved",
    S.APPROVED_WITH_CONDITIONS: "Approved with Conditions",
    S.DEFERRED: "Deferred for Further Review",
    S.REJECTED: "Rejected",
    S.REVOKED: "Revoked",
    S.CANCELLED: "Cancelled",
}


def parse_status(value: str | ApplicationStatus) -> ApplicationStatus:
    """Coerce a raw status string, raising ValidationError outside the closed set."""
    try:
        return ApplicationStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown status: {value!r}",
            errors=[f"status must be one of {sorted(s.value for s in ApplicationStatus)}"],
        )


def allowed_targets(current: ApplicationStatus) -> frozenset[ApplicationStatus]:
    return VALID_TRANSITIONS.get(current, frozenset())


def can_transition(current: ApplicationStatus, target: ApplicationStatus) -> bool:
    return target in allowed_targets(current)


def owning_stage(status: ApplicationStatus) -> Stage | None:
    return STATUS_OWNERS.get(status)


def check_transition(current: ApplicationStatus, target: ApplicationStatus) -> None:
    """Raise ConflictError unless `current -> target` is in the transition table."""
    if can_transition(current, target):
        return
    allowed = allowed_targets(current)
    raise ConflictError(
        f"Invalid status transition: {current.value} -> {target.value}. "
        f"Allowed targets: {sorted(s.value for s in allowed) if allowed else 'none (terminal state)'}",
        details={"current_status": current.value, "target_status": target.value},
    )
