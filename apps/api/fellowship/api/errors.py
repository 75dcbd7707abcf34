from fastapi import HTTPException

from fellowship.services.exceptions import (
    ConflictError,
    GoneError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    TransientError,
    ValidationError,
)


def http_error_from_service(err: ServiceError) -> HTTPException:
    if isinstance(err, NotFoundError):
        status = 404
    elif isinstance(err, GoneError):
        status = 410
    elif isinstance(err, PermissionDeniedError):
        status = 403
    elif isinstance(err, ConflictError):
        status = 409
    elif isinstance(err, ValidationError):
        status = 422
    elif isinstance(err, TransientError):
        status = 503
    else:
        status = 500

    headers = {"Retry-After": "1"} if isinstance(err, TransientError) else None
    return HTTPException(
        status_code=status,
        detail={"code": err.code, "message": err.message, **err.details},
        headers=headers,
    )
