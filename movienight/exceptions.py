"""Typed errors raised by the service layer.

Every error carries a stable machine-readable ``error_code``, a human
``message`` and the HTTP status the API renders it with.  ``extra`` holds
additional fields the client needs to react (e.g. the id of an existing
movie on a duplicate nomination).
"""

from typing import Any


class MovieNightError(Exception):
    """Base exception for service layer errors"""

    kind = "ERROR"
    default_code = "ERROR"
    status_code = 400

    def __init__(self, message: str, error_code: str | None = None, **extra: Any):
        self.message = message
        self.error_code = error_code or self.default_code
        self.extra = extra
        super().__init__(self.message)

    def __str__(self):
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.error_code, **self.extra}


class ValidationError(MovieNightError):
    """Raised when input has the wrong shape"""

    kind = "VALIDATION"
    default_code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(MovieNightError):
    kind = "NOT_FOUND"
    default_code = "NOT_FOUND"
    status_code = 404


class UnauthorizedError(MovieNightError):
    """Raised when there is no voter identity or it belongs to another session"""

    kind = "UNAUTHORIZED"
    default_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(
        self,
        message: str = "Use your invite link to join this session.",
        error_code: str | None = None,
        **extra: Any,
    ):
        super().__init__(message, error_code, **extra)


class ConflictError(MovieNightError):
    kind = "CONFLICT"
    default_code = "CONFLICT"
    status_code = 409


class ForbiddenError(MovieNightError):
    """Raised when the action is well-formed but not allowed right now"""

    kind = "FORBIDDEN"
    default_code = "FORBIDDEN"
    status_code = 403


class ExternalServiceError(MovieNightError):
    """Raised by collaborator clients when the remote service is unavailable"""

    kind = "EXTERNAL_FAILURE"
    default_code = "EXTERNAL_FAILURE"
    status_code = 502


def session_closed(session) -> ForbiddenError:
    return ForbiddenError(
        f"Voting for '{session.name}' has closed.",
        "SESSION_CLOSED",
        session_name=session.name,
        session_slug=session.slug,
    )


class ServiceNotConfiguredError(ExternalServiceError):
    """Raised when a collaborator has no base URL or API key configured"""

    default_code = "NOT_CONFIGURED"
    status_code = 503
