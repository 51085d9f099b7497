"""
Workflow error taxonomy.

Every failure the review workflow can report maps to one of these types.
The API layer turns them into HTTP responses (see `permitflow.main`):

    ValidationError   422  missing/invalid field, never reaches the store
    PermissionDenied  403  role check failed, nothing written
    NotFound          404  application / fee schedule / approval missing
    ConflictError     409  invalid transition, overpayment, stale version
    UpstreamError     502  data store or gateway failure, safe to resubmit

None of them triggers an automatic retry. Retrying is always an explicit
user action (resubmitting the form).
"""


class WorkflowError(Exception):
    status_code: int = 500
    error_code: str = "workflow_error"
    retryable: bool = False

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"detail": self.message, "error": self.error_code}
        if self.details:
            body["context"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(WorkflowError):
    status_code = 422
    error_code = "validation_error"

    def __init__(self, message: str, *, errors: list[str] | None = None, details: dict | None = None):
        super().__init__(message, details=details)
        self.errors = errors or [message]

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class PermissionDenied(WorkflowError):
    status_code = 403
    error_code = "permission_denied"


class NotFound(WorkflowError):
    status_code = 404
    error_code = "not_found"


class ConflictError(WorkflowError):
    status_code = 409
    error_code = "conflict"


class UpstreamError(WorkflowError):
    status_code = 502
    error_code = "upstream_error"
    retryable = True
