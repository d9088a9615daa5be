"""Global error handlers — every error leaves as a {success: false, ...} envelope."""

import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from questcoder.errors import AppError

logger = structlog.get_logger()

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "AUTH_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


def error_body(message: str, code: str, **extra: object) -> dict:
    """Build the error envelope."""
    return {"success": False, "message": message, "code": code, **extra}


def setup_error_handlers(app: FastAPI, debug: bool = False) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Domain errors carry their own status code and error code."""
        if exc.status_code >= 500:
            logger.error("app_error", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.message, exc.code),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with the same envelope."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail), _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed input is a client error: 400 with the field errors."""
        return JSONResponse(
            status_code=400,
            content=error_body("Validation error", "VALIDATION_ERROR", errors=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions — always return JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        extra = {}
        if debug:
            extra["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", "INTERNAL_ERROR", **extra),
        )
