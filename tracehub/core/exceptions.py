"""
Service-layer exception hierarchy.

Services raise only these types; the application registers one handler per
type and maps it to a consistent HTTP status:

    ValidationError    → 422  malformed, missing or out-of-range input
    BadRequestError    → 400  well-formed input, wrong operation for current state
    UnauthorizedError  → 401  wrong or absent password / principal
    NotFoundError      → 404  entity or edge absent, or soft-deleted
    ConflictError      → 409  duplicate title or duplicate trace edge

Usage:
    from tracehub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="UserRequirement", resource_id="UR-4")
    raise ValidationError("Title is required", details={"title": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist or is soft-deleted.

    Args:
        resource: Human-readable entity name (e.g. "TestCase", "Trace").
        resource_id: The identifier that was looked up.
        message: Optional message overriding the generated one
                 (e.g. "Source not found").
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource}"
            if resource_id is not None:
                message += f" id={resource_id}"
            message += " not found"
        super().__init__(message)


class ValidationError(Exception):
    """Raised when input is malformed, missing, or out of range.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class BadRequestError(Exception):
    """Raised when the input is well-formed but the operation is not allowed
    in the entity's current state (already approved, run not complete, ...).

    Maps to HTTP 400.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when a password check fails or no acting principal is known.

    This is a re-authentication failure, not a session failure. Maps to HTTP 401.
    """

    def __init__(self, message: str = "Invalid password") -> None:
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would violate a uniqueness rule.

    Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The unique field (or field pair) that would be duplicated.
        value: The conflicting value.
        message: Optional message overriding the generated one.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        if message is None:
            message = f"{resource} with {field}={value!r} already exists"
        super().__init__(message)
