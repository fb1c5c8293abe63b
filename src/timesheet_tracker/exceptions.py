"""Error taxonomy shared by services and the HTTP layer.

Every error carries a stable ``code`` that the API returns verbatim, so
clients can branch on it without parsing messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class TimesheetError(Exception):
    """Base class for all expected application errors."""

    code = "ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation problem."""

    field: str
    message: str


class ValidationFailedError(TimesheetError):
    """Input was malformed or out of range. Nothing was written."""

    code = "VALIDATION_FAILED"

    def __init__(self, fields: list[FieldError], message: str = "Validation failed"):
        self.fields = fields
        super().__init__(message)

    @classmethod
    def single(cls, field: str, message: str) -> ValidationFailedError:
        return cls([FieldError(field, message)])

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["fields"] = [{"field": f.field, "message": f.message} for f in self.fields]
        return body


class NotFoundError(TimesheetError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} {entity_id} not found")


class ForbiddenError(TimesheetError):
    """The authorization policy denied the action."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class ConflictError(TimesheetError):
    """A uniqueness rule would be violated."""

    code = "CONFLICT"


class AuthenticationError(TimesheetError):
    """No verified identity could be established for the request."""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class StoreFailureError(TimesheetError):
    """The store failed underneath an operation.

    The message is always generic; the original exception is chained and
    logged, never returned to the caller.
    """

    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(message)
