"""
Platform-wide exception hierarchy.

Services raise these types; ``register_error_handlers`` in
``procurement.utils.errors`` maps every subclass of ``ProcurementError`` to
the standard ``{"success": false, "error": {"code", "message"}}`` envelope
with the class's HTTP status.  Services never build HTTP responses.

Usage:
    from procurement.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Role", role_id)
    raise ValidationError("Workflow name is required", details={"name": "required"})
"""


class ProcurementError(Exception):
    """Base class for all expected, user-facing failures."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(ProcurementError):
    """Malformed or rule-violating input.  Detected before any mutation.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ProcurementError):
    """Raised when a resource does not exist within the caller's organization.

    Used for BOTH genuinely missing records AND cross-organization access, so
    a foreign id is indistinguishable from an unknown one.
    """

    code = "RESOURCE_NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(ProcurementError):
    """The operation conflicts with current state (duplicates, in-use rows)."""

    code = "RESOURCE_CONFLICT"
    status_code = 409


class ForbiddenError(ProcurementError):
    """The target is protected (system roles, default workflows)."""

    code = "FORBIDDEN"
    status_code = 403


class InsufficientPermissionsError(ProcurementError):
    """The caller lacks a permission or the level's role at the request location."""

    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", required: str | None = None) -> None:
        self.required = required
        super().__init__(message, details={"required": required} if required else None)


class AuthenticationError(ProcurementError):
    code = "UNAUTHORIZED"
    status_code = 401


class InvalidRequestStatusError(ProcurementError):
    """approve/reject/fulfil called on a request that is not in the expected state."""

    code = "INVALID_REQUEST_STATUS"
    status_code = 409

    def __init__(self, current: str, expected: str) -> None:
        self.current = current
        self.expected = expected
        super().__init__(
            f"Request is '{current}'; this action requires '{expected}'",
            details={"current": current, "expected": expected},
        )


class SelfApprovalError(ProcurementError):
    code = "CANNOT_APPROVE_OWN_REQUEST"
    status_code = 403

    def __init__(self, message: str = "You cannot approve your own request") -> None:
        super().__init__(message)


class RequestAlreadyProcessedError(ProcurementError):
    """The optimistic status guard matched no row: another actor got there first."""

    code = "REQUEST_ALREADY_PROCESSED"
    status_code = 409

    def __init__(self, message: str = "This request has already been processed") -> None:
        super().__init__(message)
