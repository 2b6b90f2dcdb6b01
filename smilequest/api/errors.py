"""
Exception handlers: every failure leaves the API as a structured error body.

    {"error": {"error_type", "error_code", "message", "details", "severity", "is_retryable"}}

Domain exceptions use their own HTTP status. Request validation failures
become 400 ValidationError bodies. Anything else is a 500 marked retryable,
which front ends treat as transient.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from smilequest.core.logging.logger import get_logger
from smilequest.modules.shared.exceptions import (
    EngagementDomainException,
    ValidationError,
    should_alert,
)
from smilequest.modules.shared.severity import ErrorSeverity

logger = get_logger(__name__)


async def handle_domain_exception(request: Request, exc: EngagementDomainException) -> JSONResponse:
    log = logger.error if should_alert(exc) else logger.info
    log(
        "Request failed with domain error",
        extra={
            "path": request.url.path,
            "error_code": exc.error_code,
            "http_status": exc.http_status,
        },
    )
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = "body"
    if errors:
        location = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = ".".join(location) or field
    error = ValidationError(field, errors[0].get("msg", "invalid request") if errors else "invalid request")
    return await handle_domain_exception(request, error)


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled error while serving request",
        extra={
            "path": request.url.path,
            "error_type": type(exc).__name__,
            "error_message": str(exc),
        },
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "error_type": "InternalError",
                "error_code": "INTERNAL_ERROR",
                "message": "Internal server error",
                "details": {},
                "severity": ErrorSeverity.ERROR.value,
                "is_retryable": True,
            }
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EngagementDomainException, handle_domain_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)
