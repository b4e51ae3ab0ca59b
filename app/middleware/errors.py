"""
Error Handling Middleware.

Renders every failure as the {error, message?, field?} envelope.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.errors import AuthError, TaskTrackerError, ValidationError

logger = logging.getLogger(__name__)


async def handle_task_tracker_error(request: Request, exc: TaskTrackerError) -> JSONResponse:
    """Map a domain error to its status code and envelope."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request bodies that do not parse are reported like any other validation error."""
    errors = exc.errors()
    field = None
    message = "Invalid request body"
    if errors:
        location = [str(part) for part in errors[0].get("loc", ()) if part != "body"]
        field = ".".join(location) or None
        message = errors[0].get("msg", message)
    return await handle_task_tracker_error(request, ValidationError(message, field=field))


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unexpected error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "message": "An unexpected error occurred"},
    )


def add_exception_handlers(app: FastAPI):
    """Register error handlers with the FastAPI application."""
    app.add_exception_handler(TaskTrackerError, handle_task_tracker_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
