"""
Domain errors raised by the affiliate and subscription services.

Each error carries the HTTP status the API layer answers with.
"""


class ServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """Referenced affiliate, user or record does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """Unique code/slug collision or a concurrent modification."""

    status_code = 409


class UpstreamFailureError(ServiceError):
    """The payment provider call failed."""

    status_code = 502


class ValidationError(ServiceError):
    status_code = 400
