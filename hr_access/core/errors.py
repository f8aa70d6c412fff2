"""
Central error handling for HR Access Backend

Services raise the ServiceError subclasses below; each carries a stable
``code`` that is returned to callers alongside the HTTP status.
"""
import logging
import traceback
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(HTTPException):
    """Base class for errors surfaced synchronously to API callers"""

    code = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class UnauthenticatedError(ServiceError):
    code = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "User must be authenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class PermissionDeniedError(ServiceError):
    code = "permission-denied"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have permission to perform this action"


class InvalidArgumentError(ServiceError):
    code = "invalid-argument"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid argument"


class NotFoundError(ServiceError):
    code = "not-found"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class FailedPreconditionError(ServiceError):
    code = "failed-precondition"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Operation is not allowed in the current state"


class AlreadyExistsError(ServiceError):
    code = "already-exists"
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists"


class InternalError(ServiceError):
    code = "internal"


def _error_code(exc: HTTPException) -> str:
    if isinstance(exc, ServiceError):
        return exc.code
    return {
        401: UnauthenticatedError.code,
        403: PermissionDeniedError.code,
        404: NotFoundError.code,
        409: FailedPreconditionError.code,
    }.get(exc.status_code, "invalid-argument" if exc.status_code < 500 else "internal")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Handle HTTPException (including ServiceError) with consistent JSON response format

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with error details
    """
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "status_code": exc.status_code,
            "code": _error_code(exc),
            "detail": exc.detail,
            "path": str(request.url.path)
        },
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle RequestValidationError with consistent JSON response format

    Does not leak internal validation details in production.
    """
    from hr_access.core.config import settings

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "status_code": 422,
                "code": InvalidArgumentError.code,
                "detail": "Validation error: Invalid request data",
                "path": str(request.url.path)
            }
        )

    # Sanitize for JSON: e.g. ctx.error ValueError -> str
    errors = []
    for e in exc.errors():
        err = dict(e)
        if "ctx" in err and isinstance(err["ctx"], dict):
            err["ctx"] = {
                k: (str(v) if not isinstance(v, (str, int, float, bool, type(None))) else v)
                for k, v in err["ctx"].items()
            }
        errors.append(err)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "status_code": 422,
            "code": InvalidArgumentError.code,
            "detail": "Validation error",
            "errors": errors,
            "path": str(request.url.path)
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions as ``internal`` errors

    Does not leak internal error details in production.
    """
    from hr_access.core.config import settings

    logger.error("Unhandled exception: %s", exc, exc_info=True)

    if settings.APP_ENV == "prod":
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "status_code": 500,
                "code": InternalError.code,
                "detail": "Internal server error",
                "path": str(request.url.path)
            },
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "status_code": 500,
            "code": InternalError.code,
            "detail": str(exc),
            "path": str(request.url.path),
            "traceback": traceback.format_exc() if settings.APP_ENV == "local" else None
        },
    )
