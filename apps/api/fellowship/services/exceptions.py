from typing import Any


class ServiceError(Exception):
    def __init__(
        self,
        code: str,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message or code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(ServiceError):
    pass


class GoneError(ServiceError):
    pass


class PermissionDeniedError(ServiceError):
    pass


class ConflictError(ServiceError):
    pass


class ValidationError(ServiceError):
    pass


class TransientError(ServiceError):
    """Storage-level failure that may succeed if the caller re-issues the request."""
