from __future__ import annotations


class AppError(Exception):
    """Base exception for all domain errors."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "Server error"

    def __init__(self, message: str | None = None, *, code: str | None = None) -> None:
        self.message = message or self.__class__.message
        if code is not None:
            self.code = code
        super().__init__(self.message)


class AuthError(AppError):
    status_code = 401
    code = "unauthorized"
    message = "Unauthorized"


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"
    message = "Forbidden"


class AuthNotConfiguredError(AppError):
    status_code = 503
    code = "auth_not_configured"
    message = "Server auth is not configured."


class ReportError(AppError):
    """A primary scan failed; the report cannot be produced."""

    status_code = 500
    code = "report_failed"
    message = "Report failed"
