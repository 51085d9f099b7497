from permitflow.workflow.statuses import (
    ApplicationStatus,
    Stage,
    REVIEW_STAGES,
    VALID_TRANSITIONS,
    STAGE_TARGETS,
    TERMINAL_STATUSES,
    PAYMENT_GATED_STATUSES,
    STATUS_LABELS,
    parse_status,
    can_transition,
    check_transition,
)

__all__ = [
    "ApplicationStatus", "Stage", "REVIEW_STAGES", "VALID_TRANSITIONS",
    "STAGE_TARGETS", "TERMINAL_STATUSES", "PAYMENT_GATED_STATUSES",
    "STATUS_LABELS", "parse_status", "can_transition", "check_transition",
]
