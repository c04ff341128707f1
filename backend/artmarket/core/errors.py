"""
Typed application errors.

Services raise these; the exception handlers registered in main.py turn them
into JSON responses. 4xx errors render with status "fail", 5xx with "error".
Operational errors are expected failures whose message is safe to show to
clients. Anything else only shows a generic message outside development.
"""


class AppError(Exception):
    status_code = 500
    operational = True

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class NotFoundError(AppError):
    status_code = 404


class InvalidInputError(AppError):
    status_code = 400


class InvalidQueryError(InvalidInputError):
    """Malformed filter, sort, projection or pagination parameters."""


class WebhookSignatureError(InvalidInputError):
    """Webhook payload failed signature verification."""


class UnauthorizedError(AppError):
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class ConflictError(AppError):
    status_code = 409


class AlreadySoldError(ConflictError):
    def __init__(self, message: str = "This artwork has already been sold"):
        super().__init__(message)


class ExternalServiceError(AppError):
    """Payment provider, notifier or image store failure."""
    status_code = 500


class InternalError(AppError):
    status_code = 500
    operational = False
