"""
Custom FastAPI exception handlers for structured error logging.

Ensures all exceptions are logged with full context and rendered as
{"code", "message", "details"} JSON bodies.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagefile.core.errors import IngestionError
from imagefile.core.logging_config import get_logger


logger = get_logger(__name__)


async def ingestion_exception_handler(request: Request, exc: IngestionError) -> JSONResponse:
    """Map ingestion failures to client (400) or server (500) errors."""
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        "ingestion_failed",
        method=request.method,
        path=str(request.url.path),
        code=exc.code.value,
        error=exc.message,
        cause=repr(exc.__cause__) if exc.__cause__ else None,
    )

    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions (including ServiceError) with structured logging."""
    logger.warning(
        "http_exception",
        method=request.method,
        path=str(request.url.path),
        status_code=exc.status_code,
        detail=exc.detail,
        client_host=request.client.host if request.client else "unknown",
    )

    # ServiceError already carries the structured body
    if isinstance(exc.detail, dict) and "code" in exc.detail:
        content = exc.detail
    else:
        content = {"code": None, "message": exc.detail, "details": {}}

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors with structured logging."""
    errors = exc.errors()

    logger.warning(
        "validation_error",
        method=request.method,
        path=str(request.url.path),
        error_count=len(errors),
        errors=errors,
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Validation error",
            "details": {"errors": jsonable_errors(errors)},
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions with structured logging."""
    logger.error(
        "unhandled_exception",
        method=request.method,
        path=str(request.url.path),
        error_type=type(exc).__name__,
        error_message=str(exc),
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "Internal server error",
            "details": {},
        },
    )


def jsonable_errors(errors):
    # Validation contexts may hold exception instances
    from fastapi.encoders import jsonable_encoder
    return jsonable_encoder(errors, custom_encoder={Exception: str})
