"""Typed errors raised by services and translated to the response envelope at the edge.

Failure envelope:
    {"success": false, "error": {"message": "...", "code": "...", "fields": {...}}}

`fields` only appears on validation errors and maps a field name to its messages.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from arena.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base error with an HTTP status and a machine-readable code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}


class ValidationError(AppError):
    """Malformed or out-of-range input (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        fields: dict[str, list[str]] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code)
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.fields:
            body["fields"] = self.fields
        return body


class BadRequestError(AppError):
    """Business rule violation: full, ended, not started, insufficient balance (400)."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """Duplicate join, duplicate email, repeated declaration (409)."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, retry_after: int) -> None:
        super().__init__(message)
        self.retry_after = retry_after


def error_response(
    status_code: int,
    message: str,
    code: str | None = None,
    fields: dict[str, list[str]] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error: dict = {"message": message}
    if code:
        error["code"] = code
    if fields:
        error["fields"] = fields
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


def _field_name(loc: tuple) -> str:
    # ("body", "entryFee") -> "entryFee"; ("query", "page") -> "page"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header", "cookie")]
    return ".".join(parts) or "request"


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(
        "%s %s -> %d %s: %s",
        request.method, request.url.path, exc.status_code, exc.code, exc.message,
    )
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
        headers=headers,
    )


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    fields: dict[str, list[str]] = {}
    for err in exc.errors():
        msg = str(err.get("msg", "Invalid value"))
        # pydantic prefixes custom validator messages with "Value error, "
        msg = msg.removeprefix("Value error, ")
        fields.setdefault(_field_name(tuple(err.get("loc", ()))), []).append(msg)
    logger.info("Validation failed on %s %s: %s", request.method, request.url.path, fields)
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", "VALIDATION_ERROR", fields)


async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(404, "Route not found", "NOT_FOUND")
    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
        return error_response(405, "Method not allowed", "METHOD_NOT_ALLOWED")
    return error_response(exc.status_code, str(exc.detail), None, headers=exc.headers)


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(status.HTTP_409_CONFLICT, "Resource already exists", "DUPLICATE_KEY")


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error on %s %s from %s",
        request.method,
        request.url.path,
        request.client.host if request.client else "unknown",
    )
    message = "Internal server error" if settings.is_production else str(exc) or type(exc).__name__
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message, "INTERNAL_ERROR")


def register_error_handlers(app: FastAPI) -> None:
    """Install the envelope translators on an app."""
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
