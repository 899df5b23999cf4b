"""
Service-layer exception hierarchy.

Services raise these; blueprints register handlers against them once and get
consistent HTTP status codes everywhere (see ``civicfix.utils.errors``).

Usage:
    from civicfix.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Report", resource_id=report_id)
    raise ValidationError("Only resolved reports can be deleted")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Report", "Team").
        resource_id: The key that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown, keyed by field name.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the caller's identity does not own the target row.

    Maps to HTTP 403.
    """


class ExternalServiceError(Exception):
    """Raised when a collaborator outside the process fails (storage, AI).

    Maps to HTTP 502.

    Args:
        service: Short name of the failing collaborator ("storage", "gemini").
        message: What went wrong.
    """

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")
