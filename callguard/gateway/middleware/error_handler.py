"""Global error handling middleware."""

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

logger = structlog.get_logger()


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the FastAPI app."""

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with standard error format.

        Exception headers are passed through (e.g. Content-Range on 416).
        """
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": _status_to_code(exc.status_code),
                    "message": exc.detail,
                }
            },
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        """Handle Pydantic validation errors."""
        return JSONResponse(
            status_code=400,
            content={
                "error": {
                    "code": "invalid_request",
                    "message": "Validation error",
                    "details": jsonable_errors(exc),
                }
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("unhandled_exception", error=str(exc), path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An internal error occurred",
                }
            },
        )


def jsonable_errors(exc: ValidationError | RequestValidationError) -> list[dict]:
    """Validation errors without non-serializable context objects."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


def _status_to_code(status_code: int) -> str:
    """Map HTTP status codes to error codes."""
    codes = {
        400: "invalid_request",
        404: "not_found",
        409: "conflict",
        416: "range_not_satisfiable",
        422: "invalid_request",
        500: "internal_error",
        502: "bad_gateway",
        503: "service_unavailable",
    }
    return codes.get(status_code, "error")
