"""Wire error envelope and app-wide exception handlers.

Learn: Every error the API returns has the same shape:

    {"error": "InvalidCredentials", "message": "Invalid email or password"}

plus `errors: {field: [messages]}` for validation failures. Business
failures come back from the services as `Failure` values and go through
`failure_response`. Everything else (bad JSON, HTTPException from a
dependency, an unexpected crash) is caught by the handlers registered
in `register_exception_handlers`.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from wayfarer.auth.results import ErrorCode, Failure
from wayfarer.config import settings

logger = structlog.get_logger()


class ErrorResponse(BaseModel):
    error: str
    message: str
    errors: Optional[dict[str, list[str]]] = None


# Status → code for errors that don't come from a Failure.
_STATUS_CODES = {
    400: "BadRequest",
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
    409: "Conflict",
    429: "TooManyRequests",
}


def error_body(error: str, message: str, errors: Optional[dict] = None) -> dict:
    return ErrorResponse(error=error, message=message, errors=errors).model_dump(
        exclude_none=True
    )


def failure_response(failure: Failure) -> JSONResponse:
    """Map a service Failure onto its HTTP status and the envelope."""
    logger.info(
        "api.failure",
        error=failure.code.value,
        category=failure.code.category.value,
        status=failure.http_status,
    )
    return JSONResponse(
        status_code=failure.http_status,
        content=error_body(failure.code.value, failure.message),
    )


def _field_name(loc: tuple) -> str:
    # ("body", "newPassword") → "newPassword"; drop the location prefix.
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "body"


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        errors.setdefault(_field_name(tuple(err.get("loc", ()))), []).append(err["msg"])
    return JSONResponse(
        status_code=400,
        content=error_body(
            ErrorCode.VALIDATION_ERROR.value,
            "One or more validation errors occurred.",
            errors,
        ),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            _STATUS_CODES.get(exc.status_code, "Error"),
            str(exc.detail),
        ),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "api.unhandled_exception",
        path=request.url.path,
        method=request.method,
        exc_type=type(exc).__name__,
        exc_info=exc,
    )
    message = str(exc) if settings.debug else "An unexpected error occurred."
    return JSONResponse(
        status_code=ErrorCode.INTERNAL_SERVER_ERROR.http_status,
        content=error_body(ErrorCode.INTERNAL_SERVER_ERROR.value, message),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
