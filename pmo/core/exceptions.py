"""
Platform-wide exception hierarchy.

Services raise these; nothing below the blueprint layer catches them.
``pmo.middleware.error_handlers`` is the single place that maps each kind
to an HTTP status and the JSON envelope.

Usage:
    from pmo.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""

from pmo.utils.errors import E


class PMOError(Exception):
    """Base class carrying the HTTP status and machine-readable code."""

    status_code = 500
    error_code = E.INTERNAL

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(PMOError):
    """Missing or malformed input, or a violated business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    status_code = 400
    error_code = E.VALIDATION_INVALID

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(PMOError):
    """Missing, expired or invalid credential, or an inactive account."""

    status_code = 401
    error_code = E.UNAUTHENTICATED


class AuthorizationError(PMOError):
    """A role or ownership predicate denied the action.

    Args:
        required_permission: Permission name, e.g. ``"project.delete"``.
        user_role: The principal's actual role.
        required_roles: Roles that would have been granted the action in general.
    """

    status_code = 403
    error_code = E.FORBIDDEN

    def __init__(
        self,
        required_permission: str,
        user_role: str | None,
        required_roles: list[str] | None = None,
        message: str | None = None,
    ) -> None:
        self.required_permission = required_permission
        self.user_role = user_role
        self.required_roles = list(required_roles or [])
        if message is None:
            message = f"Permission denied: '{required_permission}'"
            if self.required_roles:
                message += f" requires role {' or '.join(self.required_roles)}"
            message += f" (current role: {user_role})"
        super().__init__(message)


class NotFoundError(PMOError):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "Deliverable").
        resource_id: The PK that was looked up.
    """

    status_code = 404
    error_code = E.NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ConflictError(PMOError):
    """Raised when an operation would violate a uniqueness constraint.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    status_code = 409
    error_code = E.CONFLICT_DUPLICATE

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class DependencyError(PMOError):
    """Delete blocked by existing child records.

    Args:
        resource: Model name of the entity that could not be deleted.
        dependents: Mapping of child kind to count, e.g. ``{"deliverables": 3}``.
    """

    status_code = 400
    error_code = E.DEPENDENCY_BLOCKED

    def __init__(self, resource: str, dependents: dict[str, int]) -> None:
        self.resource = resource
        self.dependents = dict(dependents)
        listing = ", ".join(f"{count} {kind}" for kind, count in self.dependents.items())
        super().__init__(f"Cannot delete {resource}: it still has {listing}")


class StoreError(PMOError):
    """Connection failure or timeout while talking to the store."""

    status_code = 500
    error_code = E.DATABASE

    def __init__(self, message: str = "store unavailable") -> None:
        super().__init__(message)
