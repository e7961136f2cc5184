"""
Structured API errors and the handlers that render them.

Every error leaves the API as::

    {"code": "error", "message": "...",
     "data": {"type": "...", "errorCode": "...", "status": 404, "param": "..."}}
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)

# Error types
AUTHENTICATION_ERROR = "authentication_error"
PERMISSION_ERROR = "permission_error"
INVALID_REQUEST_ERROR = "invalid_request_error"
RESOURCE_ERROR = "resource_error"
RATE_LIMIT_ERROR = "rate_limit_error"
SERVER_ERROR = "server_error"


class ApiError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_type: str = SERVER_ERROR
    error_code: str = "internal_server_error"
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        param: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.message = message or self.default_message
        self.param = param
        if code:
            self.error_code = code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        data = {
            "type": self.error_type,
            "errorCode": self.error_code,
            "status": self.status_code,
        }
        if self.param:
            data["param"] = self.param
        return {"code": "error", "message": self.message, "data": data}


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    error_type = RESOURCE_ERROR
    error_code = "resource_not_found"
    default_message = "Resource not found"


class InvalidParentError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = INVALID_REQUEST_ERROR
    error_code = "invalid_parent"
    default_message = "Parent comment belongs to a different post"


class HasRepliesError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    error_type = RESOURCE_ERROR
    error_code = "has_replies"
    default_message = "Comment has replies and cannot be deleted"


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    error_type = RESOURCE_ERROR
    error_code = "resource_already_exists"
    default_message = "Resource already exists"


class NotLikedError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = INVALID_REQUEST_ERROR
    error_code = "not_liked"
    default_message = "Post has not been liked"


class PermissionDeniedError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    error_type = PERMISSION_ERROR
    error_code = "insufficient_permissions"
    default_message = "You don't have permission to perform this action"


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_type = AUTHENTICATION_ERROR
    error_code = "invalid_token"
    default_message = "Could not validate credentials"


class InvalidRequestError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = INVALID_REQUEST_ERROR
    error_code = "invalid_parameters"
    default_message = "Invalid request parameters"


class UploadFailedError(ApiError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "upload_failed"
    default_message = "File upload failed"


class DeleteFailedError(ApiError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "delete_failed"
    default_message = "File deletion failed"


class ResolveFailedError(ApiError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "resolve_failed"
    default_message = "Could not generate file access URL"


class InvalidReferenceError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_type = INVALID_REQUEST_ERROR
    error_code = "invalid_reference"
    default_message = "Unrecognized storage reference"


_HTTP_ERROR_TYPES = {
    status.HTTP_401_UNAUTHORIZED: (AUTHENTICATION_ERROR, "invalid_token"),
    status.HTTP_403_FORBIDDEN: (PERMISSION_ERROR, "insufficient_permissions"),
    status.HTTP_404_NOT_FOUND: (RESOURCE_ERROR, "resource_not_found"),
    status.HTTP_405_METHOD_NOT_ALLOWED: (INVALID_REQUEST_ERROR, "operation_not_allowed"),
    status.HTTP_429_TOO_MANY_REQUESTS: (RATE_LIMIT_ERROR, "too_many_requests"),
}


def error_body(
    message: str,
    status_code: int,
    error_type: str,
    error_code: str,
    param: Optional[str] = None,
) -> dict:
    data = {"type": error_type, "errorCode": error_code, "status": status_code}
    if param:
        data["param"] = param
    return {"code": "error", "message": message, "data": data}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_type, error_code = _HTTP_ERROR_TYPES.get(
        exc.status_code, (INVALID_REQUEST_ERROR, "invalid_parameters")
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), exc.status_code, error_type, error_code),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    param = None
    message = "Invalid request parameters"
    if errors:
        first = errors[0]
        # loc looks like ("body", "title") or ("query", "page")
        location = [str(part) for part in first.get("loc", ())[1:]]
        param = ".".join(location) or None
        message = first.get("msg", message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(
            message,
            status.HTTP_400_BAD_REQUEST,
            INVALID_REQUEST_ERROR,
            "invalid_parameters",
            param,
        ),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=ConflictError("Resource conflicts with existing data").to_dict(),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ApiError().to_dict(),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
