"""Response envelope and exception handlers.

Every response body has the shape::

    {"success": true,  "data": ...,                          "timestamp": "...Z"}
    {"success": false, "error": {"code", "message", "details"?}, "timestamp": "...Z"}
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.exceptions import HTTPException as StarletteHTTPException

from agrimarket.domain.errors import STATUS_BY_CODE, ApiError, ErrorCode

logger = logging.getLogger(__name__)

# Starlette HTTPException status -> taxonomy code
_CODE_BY_STATUS = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHENTICATED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMITED,
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def success_response(
    data: Any = None,
    status_code: int = 200,
    background: BackgroundTask | BackgroundTasks | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data), "timestamp": utc_timestamp()},
        background=background,
    )


def error_response(
    code: ErrorCode,
    message: str,
    status_code: int | None = None,
    details: Any = None,
    headers: dict[str, str] | None = None,
    background: BackgroundTask | BackgroundTasks | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {"code": code.value, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    return JSONResponse(
        status_code=status_code or STATUS_BY_CODE[code],
        content={"success": False, "error": error, "timestamp": utc_timestamp()},
        headers=headers,
        background=background,
    )


def _field_path(loc: tuple) -> str:
    # Drop the "body"/"query"/"path" prefix FastAPI adds
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def validation_details(errors: list[dict]) -> list[dict]:
    """Pydantic error list -> ``[{field, message, code}]``."""
    details = []
    for err in errors:
        message = err.get("msg", "Invalid value")
        # "Value error, Location is required for farmers" -> "Location is required for farmers"
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append({
            "field": _field_path(tuple(err.get("loc", ()))),
            "message": message,
            "code": err.get("type", "invalid"),
        })
    return details


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(exc.code, exc.message, exc.status_code, exc.details)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        ErrorCode.VALIDATION_ERROR,
        "Validation failed",
        details=validation_details(exc.errors()),
    )


async def pydantic_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(
        ErrorCode.VALIDATION_ERROR,
        "Validation failed",
        details=validation_details(exc.errors()),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _CODE_BY_STATUS.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    if exc.status_code == 404:
        message = f"Route {request.method} {request.url.path} not found"
        status_code = 404
    elif exc.status_code == 405:
        message = f"Method {request.method} not allowed on {request.url.path}"
        status_code = 404
    else:
        message = str(exc.detail) if exc.detail else "Request failed"
        status_code = exc.status_code if exc.status_code < 500 else 500
    return error_response(code, message, status_code, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.error(
        "Unhandled error on %s %s (request %s)",
        request.method,
        request.url.path,
        request_id,
        exc_info=exc,
    )
    return error_response(
        ErrorCode.INTERNAL_ERROR,
        "Internal server error",
        details={"requestId": request_id} if request_id else None,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
