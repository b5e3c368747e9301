"""
Application errors rendered by the FastAPI exception handlers
"""


class AppError(Exception):
    """Base error carrying an HTTP status code."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class UpstreamError(AppError):
    """Warehouse or ad-platform call failed."""

    status_code = 500


class ImportFailedError(AppError):
    """CSV import could not start or aborted."""
