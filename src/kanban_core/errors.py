"""Typed errors raised by the service layer.

Every error carries a human-readable ``message`` and the HTTP status the API
layer answers with.
"""


class KanbanError(Exception):
    """Base class for all service-level failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(KanbanError):
    """Raised when an entity id does not resolve."""

    status_code = 404


class ForbiddenError(KanbanError):
    """Raised when the principal is authenticated but not authorized."""

    status_code = 403


class ValidationError(KanbanError):
    """Raised for missing/invalid fields or a non-member assignee."""

    status_code = 400


class ConflictError(KanbanError):
    """Raised when a concurrent write prevents an operation from completing."""

    status_code = 409


class AuthenticationError(KanbanError):
    """Raised for missing, expired or invalid credentials."""

    status_code = 401
