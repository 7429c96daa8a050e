"""
Domain exceptions and FastAPI exception handlers with request ID support
Standardized error response format: { error, code, status_code, request_id, details? }
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging_config import get_request_id

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for errors raised by the service layer"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class InvalidStateError(ServiceError):
    """Raised when a status transition is not legal from the current status"""

    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"

    def __init__(self, entity: str, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} {entity} in status '{current_status}'",
            details={"current_status": current_status, "action": action},
        )
        self.current_status = current_status


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ValidationFailedError(ServiceError, ValueError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class ForbiddenError(ServiceError):
    """Raised when a tenant policy disallows the action for this caller"""

    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class TenantAccessError(ForbiddenError):
    pass


class TenantContextError(ServiceError):
    """Raised when tenant-scoped data is written outside a tenant context"""

    code = "TENANT_CONTEXT_MISSING"


class ErrorResponse:
    """
    Standard error response format

    Schema: { error, code, status_code, request_id, details? }
    """

    @staticmethod
    def create(
        message: str,
        code: str,
        status_code: int,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> dict:
        """
        Create standardized error response

        Args:
            message: Human-readable error message
            code: Error code (e.g., "VALIDATION_ERROR", "AUTH_ERROR", "INVALID_STATE")
            status_code: HTTP status code
            request_id: Request ID from context (auto-fetched if None)
            details: Optional additional error details

        Returns:
            Dictionary with error details
        """
        if request_id is None:
            request_id = get_request_id()

        response = {
            "error": message,
            "code": code,
            "status_code": status_code,
        }
        if request_id:
            response["request_id"] = request_id
        if details:
            response["details"] = details
        return response


ERROR_CODE_MAP = {
    400: "BAD_REQUEST",
    401: "AUTH_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Handle domain exceptions raised by services"""
    request_id = get_request_id()
    error_response = ErrorResponse.create(
        message=exc.message,
        code=exc.code,
        status_code=exc.status_code,
        request_id=request_id,
        details=exc.details,
    )

    if exc.status_code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc.message}",
            exc_info=True,
            extra={"request_id": request_id, "path": request.url.path},
        )
    else:
        logger.warning(
            f"{type(exc).__name__} ({exc.status_code}): {exc.message}",
            extra={"request_id": request_id, "path": request.url.path},
        )

    return JSONResponse(status_code=exc.status_code, content=error_response)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions with request ID"""
    request_id = get_request_id()
    error_code = ERROR_CODE_MAP.get(exc.status_code, "HTTP_ERROR")

    detail = exc.detail
    error_message = str(detail) if detail else f"HTTP {exc.status_code} error"
    error_details = None

    if isinstance(detail, dict):
        error_message = detail.get("message", str(detail))
        error_code = detail.get("code", error_code)
        error_details = {k: v for k, v in detail.items() if k not in ("message", "code")} or None

    error_response = ErrorResponse.create(
        message=error_message,
        code=error_code,
        status_code=exc.status_code,
        request_id=request_id,
        details=error_details,
    )

    logger.warning(
        f"HTTP {exc.status_code}: {error_message}",
        extra={"request_id": request_id, "path": request.url.path},
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions with request ID"""
    request_id = get_request_id()

    errors = exc.errors()
    error_messages = [f"{err['loc']}: {err['msg']}" for err in errors]
    detail = "; ".join(error_messages)

    error_response = ErrorResponse.create(
        message=f"Validation error: {detail}",
        code="VALIDATION_ERROR",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        request_id=request_id,
        details={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in errors]},
    )

    logger.warning(
        f"Validation error: {detail}",
        extra={"request_id": request_id, "path": request.url.path},
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions with request ID"""
    request_id = get_request_id()

    # Don't expose internal error details outside dev
    from .config import config
    error_message = "Internal server error"
    error_details = None

    if config.is_dev:
        error_message = f"Internal server error: {str(exc)}"
        error_details = {"exception_type": type(exc).__name__}

    error_response = ErrorResponse.create(
        message=error_message,
        code="INTERNAL_ERROR",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        request_id=request_id,
        details=error_details,
    )

    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={"request_id": request_id, "path": request.url.path},
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
