from typing import Any, Optional


class AppError(Exception):
    status_code = 400
    error = "bad_request"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailed(AppError):
    status_code = 400
    error = "validation_error"


class NotFoundError(AppError):
    status_code = 404
    error = "not_found"


class Forbidden(AppError):
    status_code = 403
    error = "forbidden"


class Conflict(AppError):
    status_code = 409
    error = "conflict"
