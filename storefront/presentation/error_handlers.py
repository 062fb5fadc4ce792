"""Centralized error handling for the presentation layer."""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ..domain.exceptions import DomainError
from ..logging_config import get_logger
from .problem_details import ErrorCodes, ProblemDetail, ProblemDetailFactory

logger = get_logger(__name__)


def _problem_response(problem: ProblemDetail) -> JSONResponse:
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Structured application errors keep their own status and message."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Domain error occurred",
        error_type=type(exc).__name__,
        error_message=exc.message,
        path=request.url.path,
        method=request.method,
    )
    return _problem_response(
        ProblemDetailFactory.from_status(
            exc.status_code,
            exc.message,
            instance=request.url.path,
            code=exc.error_code,
        )
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Pydantic request errors become a 400 with one entry per field."""
    logger.warning(
        "Request validation error occurred",
        errors=exc.errors(),
        path=request.url.path,
        method=request.method,
    )

    field_errors = []
    for error in exc.errors():
        field_name = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        field_errors.append(
            {
                "field": field_name or "unknown",
                "code": (
                    ErrorCodes.FIELD_REQUIRED
                    if error["type"] == "missing"
                    else ErrorCodes.FIELD_INVALID_VALUE
                ),
                "message": error["msg"],
            }
        )

    return _problem_response(
        ProblemDetailFactory.validation_failed(
            detail="Request validation failed",
            instance=request.url.path,
            field_errors=field_errors,
        )
    )


async def database_error_handler(
    request: Request, exc: SQLAlchemyError
) -> JSONResponse:
    logger.error(
        "Database error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return _problem_response(
        ProblemDetailFactory.internal_server_error(
            detail="A database error occurred. Please try again.",
            instance=request.url.path,
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unexpected error occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return _problem_response(
        ProblemDetailFactory.internal_server_error(instance=request.url.path)
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(
        DomainError,
        domain_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(
        SQLAlchemyError,
        database_error_handler,  # type: ignore[arg-type]
    )
    app.add_exception_handler(Exception, general_exception_handler)
