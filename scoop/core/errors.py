"""Exception types shared by the pipeline, the API and the CLI."""

from typing import Any, Dict


class ScoopError(Exception):
    """Base class for newsletter errors.

    ``status_code`` is the HTTP status the web layer answers with.
    """

    status_code = 500
    error = "Internal error"

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details: Dict[str, Any] = details


class ValidationError(ScoopError):
    status_code = 400
    error = "Invalid request"


class NotFoundError(ScoopError):
    status_code = 404
    error = "Not found"


class AuthError(ScoopError):
    status_code = 401
    error = "Unauthorized"


class TransitionRejected(ValidationError):
    """Raised when a campaign status change is not allowed."""

    error = "Invalid status transition"


class JobAlreadyClaimed(ScoopError):
    """Raised when a (campaign date, job type) key is already taken."""

    status_code = 409
    error = "Job already ran"


class DeliveryError(ScoopError):
    """Email provider rejected or failed a request."""

    status_code = 502
    error = "Email provider error"


class AIClientError(ScoopError):
    """AI completion endpoint is unusable (no key, all models failed)."""

    status_code = 502
    error = "AI service error"
