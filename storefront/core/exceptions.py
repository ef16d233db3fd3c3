from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ConflictError(AppError):
    def __init__(self, message: str = "Conflict", details: dict[str, Any] | None = None):
        super().__init__(message, code="CONFLICT", status_code=status.HTTP_409_CONFLICT, details=details)


class BadRequestError(AppError):
    def __init__(self, message: str = "Bad request", details: dict[str, Any] | None = None):
        super().__init__(message, code="BAD_REQUEST", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class ValidationError(AppError):
    """Missing or malformed required field; details name the missing or invalid fields."""

    def __init__(
        self,
        message: str = "Validation error",
        missing: list[str] | None = None,
        invalid: list[str] | None = None,
    ):
        details = {}
        if missing:
            details["missing"] = missing
        if invalid:
            details["invalid"] = invalid
        super().__init__(message, code="VALIDATION_ERROR", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InsufficientStockError(AppError):
    def __init__(self, message: str = "Insufficient stock", details: dict[str, Any] | None = None):
        super().__init__(message, code="INSUFFICIENT_STOCK", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class PaymentAuthenticationError(AppError):
    def __init__(self, message: str = "Invalid payment signature"):
        super().__init__(message, code="PAYMENT_AUTHENTICATION_FAILED", status_code=status.HTTP_400_BAD_REQUEST)


class InvalidTransitionError(AppError):
    def __init__(self, message: str = "Invalid status transition"):
        super().__init__(message, code="INVALID_TRANSITION", status_code=status.HTTP_400_BAD_REQUEST)


def _envelope(request: Request, message: str, code: str, details: dict[str, Any]) -> dict[str, Any]:
    body = {
        "success": False,
        "message": message,
        "error": {
            "code": code,
            "details": details,
        },
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return body


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_envelope(request, exc.message, exc.code, exc.details),
    )


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_envelope(request, "Validation error", "VALIDATION_ERROR", {"errors": errors}),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from storefront.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc, path=request.url.path)
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(request, "Internal server error", "INTERNAL_ERROR", {}),
    )
