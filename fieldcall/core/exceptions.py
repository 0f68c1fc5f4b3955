"""
Service-wide exception hierarchy.

Services raise these; the blueprint registers handlers against them once and
maps them to consistent HTTP envelopes.

Usage:
    from fieldcall.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Activity", resource_id=42)
    raise ValidationError("Validation failed", details={"confirm": "Type YES to confirm"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Activity").
        resource_id: The PK that was looked up. Included in logs and message.
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
    """Raised when request input fails validation before any persistence.

    Maps to HTTP 400 with field-level ``details``.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown; keys are field names, values are
                 error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)
