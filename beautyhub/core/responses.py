"""Uniform {data, error} response envelope and exception handlers."""

from http import HTTPStatus
from typing import Any, Generic, TypeVar

import structlog
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from beautyhub.core.config import settings

logger = structlog.get_logger()

T = TypeVar("T")

_ERROR_CODES: dict[int, str] = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_409_CONFLICT: "CONFLICT",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "VALIDATION_ERROR",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


class ApiError(BaseModel):
    """Error block of the envelope."""

    code: str
    message: str
    details: Any | None = None


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every API route."""

    data: T | None = None
    error: ApiError | None = None


class PageMeta(BaseModel):
    """Pagination block for list endpoints."""

    page: int
    limit: int
    total: int
    has_more: bool


class PagedResponse(BaseModel, Generic[T]):
    """Envelope for list endpoints."""

    data: list[T] = []
    error: ApiError | None = None
    meta: PageMeta | None = None


def ok(data: T) -> ApiResponse[T]:
    """Wrap a payload in a success envelope."""
    return ApiResponse(data=data)


def error_response(
    status_code: int,
    message: str,
    code: str | None = None,
    details: Any | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build an error envelope response."""
    body = ApiResponse(
        error=ApiError(
            code=code or _ERROR_CODES.get(status_code, HTTPStatus(status_code).phrase.upper()),
            message=message,
            details=details,
        )
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        return error_response(
            exc.status_code,
            str(detail.get("message", "")),
            code=detail.get("code"),
            headers=exc.headers,
        )
    return error_response(exc.status_code, str(detail), headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    message = f"{type(exc).__name__}: {exc}" if settings.DEBUG else "Internal server error"
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, message, code="INTERNAL_ERROR"
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Render errors into the envelope for every route."""
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
