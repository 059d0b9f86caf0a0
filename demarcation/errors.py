# demarcation/errors.py
"""Error taxonomy raised by the services and its translation to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PortalError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = 400
    default_message = "Invalid input"


class AuthenticationError(PortalError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(PortalError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(PortalError):
    status_code = 404
    default_message = "Not found"


class ConflictError(PortalError):
    status_code = 409
    default_message = "Conflict"


class InvalidTransitionError(ConflictError):
    default_message = "Invalid status transition"


class UnsupportedFormatError(PortalError):
    status_code = 400
    default_message = "Unsupported report format"


class NoDataError(PortalError):
    status_code = 404
    default_message = "No data available for report"


async def _portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def _request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = first.get("msg", "Invalid request")
    detail = f"{field}: {message}" if field else message
    return JSONResponse(status_code=400, content={"detail": detail})


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, _portal_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
