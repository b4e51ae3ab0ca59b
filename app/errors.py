"""Error taxonomy shared by the API and the client library.

Each error carries the HTTP status the API answers with, so the server can
render it and the client Gateway can map a response back to the same class.
"""
from typing import Any, Dict, Optional


class TaskTrackerError(Exception):
    """Base exception for task tracker errors."""

    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Render the error envelope: {error, message?, field?}."""
        body: Dict[str, Any] = {"error": self.error, "message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(TaskTrackerError):
    """Bad input shape: empty title, oversize field, empty update set."""

    status_code = 400
    error = "Validation failed"


class AuthError(TaskTrackerError):
    """Credential rejected, expired or absent."""

    status_code = 401
    error = "Authentication failed"


class NotFoundError(TaskTrackerError):
    """Task id absent or not owned by the caller."""

    status_code = 404
    error = "Task not found"


class StoreError(TaskTrackerError):
    """Transport failure or unexpected task store failure."""

    status_code = 500
    error = "Task store error"


class SubscriptionError(TaskTrackerError):
    """Change feed connection failure."""

    status_code = 503
    error = "Change feed unavailable"


ERRORS_BY_STATUS = {
    ValidationError.status_code: ValidationError,
    AuthError.status_code: AuthError,
    NotFoundError.status_code: NotFoundError,
}
