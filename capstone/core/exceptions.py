"""
Workflow exception hierarchy.

Every service raises one of these types; the error-handler registry in
``capstone.utils.errors`` renders them into the standard failure envelope
with a consistent HTTP status.  Validation and business-rule errors are
raised before any mutation; PersistenceError is raised by the unit of work
after rollback.

Usage:
    from capstone.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Team", resource_id="TEAM-0001")
    raise ValidationError("reason is required", details={"reason": "required"})
"""


class WorkflowError(Exception):
    """Base class.  ``kind`` is the machine-facing error name, ``status`` the HTTP code."""

    kind = "WorkflowError"
    status = 400
    code = "ERR_VALIDATION_INVALID"

    def __init__(self, message: str, details: dict | None = None, code: str | None = None) -> None:
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(WorkflowError):
    """Missing or malformed input, or input that violates a compatibility rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown.  Keys are field names.
    """

    kind = "ValidationError"
    status = 400
    code = "ERR_VALIDATION_INVALID"


class NotFoundError(WorkflowError):
    """Referenced request, team or user does not exist (or is no longer pending).

    Args:
        resource: Human-readable entity name (e.g. "Team", "GuideRequest").
        resource_id: The key that was looked up.
    """

    kind = "NotFound"
    status = 404
    code = "ERR_NOT_FOUND"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg, details={"resource": resource})


class ConflictError(WorkflowError):
    """Operation clashes with current state: overlapping role, team already
    formed, team size exceeded, already decided."""

    kind = "Conflict"
    status = 409
    code = "ERR_CONFLICT_STATE"


class DuplicateRequestError(ConflictError):
    """A pending or accepted request already exists between the same parties."""

    kind = "DuplicateRequest"
    code = "ERR_CONFLICT_DUPLICATE"


class ForbiddenError(WorkflowError):
    """Caller identity is valid but is not the party allowed to act."""

    kind = "Forbidden"
    status = 403
    code = "ERR_FORBIDDEN"


class CapacityExceededError(WorkflowError):
    """Business-rule saturation: the target already holds its maximum
    number of concurrently accepted teams, or is unavailable.

    Callers may retry against a different target.
    """

    kind = "CapacityExceeded"
    status = 409
    code = "ERR_CAPACITY_EXCEEDED"


class NoEligibleTargetsError(CapacityExceededError):
    """Every target of a multi-target request was excluded by capacity."""

    kind = "NoEligibleTargets"
    code = "ERR_NO_ELIGIBLE_TARGETS"


class TimeWindowExceededError(WorkflowError):
    """Marks or end-time entry attempted outside the allowed window."""

    kind = "TimeWindowExceeded"
    status = 422
    code = "ERR_TIME_WINDOW"


class PersistenceError(WorkflowError):
    """Store-level failure.

    The transaction has been rolled back.  Only ``reference`` is surfaced
    to callers; the underlying error is logged next to the same reference.
    """

    kind = "PersistenceError"
    status = 500
    code = "ERR_DATABASE"

    def __init__(self, reference: str, operation: str | None = None) -> None:
        self.reference = reference
        self.operation = operation
        super().__init__("A storage error occurred. Quote the reference when reporting it.")
