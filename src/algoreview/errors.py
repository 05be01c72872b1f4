"""Domain errors.

Client-visible errors carry an HTTP status and a stable machine-readable code;
the global handler in ``algoreview.middleware.error_handler`` renders them.
``AnalysisDegraded`` and ``IllegalTransition`` never reach a client.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors rendered as JSON responses."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class InvalidInput(AppError):
    """Malformed or oversized submission."""

    status_code = 400
    code = "invalid_input"


class QuotaExceeded(AppError):
    """Job limit reached for the current billing period."""

    status_code = 403
    code = "quota_exceeded"


class NotFound(AppError):
    """Resource not found."""

    status_code = 404
    code = "not_found"


class JobFailed(AppError):
    """Unrecoverable internal error while processing a job."""

    status_code = 500
    code = "job_failed"


class IllegalTransition(AppError):
    """Attempted a status change the job state machine does not allow."""

    status_code = 500
    code = "illegal_transition"


class AnalysisDegraded(Exception):
    """The external analysis capability failed, timed out, or returned malformed output."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
