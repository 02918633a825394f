"""Domain exceptions and the FastAPI handlers that render them.

Every failure leaves the API as ``{"error": {"code": ..., "message": ...}}``.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class BookingEngineError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details
        self.headers = headers


class ValidationError(BookingEngineError):
    status_code = 400
    code = "invalid_request"


class FormatError(ValidationError):
    code = "invalid_field_format"


class NotFoundError(BookingEngineError):
    status_code = 404
    code = "not_found"


class DuplicateBookingError(BookingEngineError):
    status_code = 400
    code = "duplicate_booking"


class CapacityExceededError(BookingEngineError):
    status_code = 400
    code = "time_slot_full"


class VersionConflictError(BookingEngineError):
    status_code = 409
    code = "version_conflict"


class InvalidStatusTransitionError(BookingEngineError):
    status_code = 422
    code = "invalid_status_transition"


class AuthenticationError(BookingEngineError):
    status_code = 401
    code = "unauthorized"


class ForbiddenError(AuthenticationError):
    status_code = 403
    code = "forbidden"


class RateLimitError(BookingEngineError):
    status_code = 429
    code = "rate_limit_exceeded"


class InternalError(BookingEngineError):
    status_code = 500
    code = "internal_error"


def error_body(code: str, message: str, details: Optional[Any] = None) -> dict:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return {"error": error}


_HTTP_CODES = {
    400: "invalid_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    429: "rate_limit_exceeded",
}


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingEngineError)
    async def booking_engine_error_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            error_body(exc.code, exc.message, exc.details),
            status_code=exc.status_code,
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        missing = any(err.get("type") == "missing" for err in errors)
        code = "missing_required_field" if missing else "invalid_request"
        fields = [".".join(str(part) for part in err.get("loc", ()) if part != "body") for err in errors]
        message = f"Invalid request: {', '.join(f for f in fields if f)}" if fields else "Invalid request"
        details = [{"field": f, "message": err.get("msg")} for f, err in zip(fields, errors)]
        return JSONResponse(error_body(code, message, details), status_code=400)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        code = _HTTP_CODES.get(exc.status_code, "error")
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            error_body(code, message),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            error_body("internal_error", "An internal error occurred"),
            status_code=500,
        )
