import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DecorbookError(Exception):
    """Base exception for errors with an intended HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DecorbookError):
    status_code = 404


class Conflict(DecorbookError):
    status_code = 409


class ValidationFailure(DecorbookError):
    status_code = 400


class ExternalProviderFailure(DecorbookError):
    """
    Checkout provider error.

    retryable=True means the provider was unreachable or throttled and the
    caller may try again (503); otherwise the request itself was rejected (502).
    """

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = 503 if retryable else 502


class InternalFailure(DecorbookError):
    status_code = 500


async def _handle_domain_error(request: Request, exc: DecorbookError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def _handle_db_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DecorbookError, _handle_domain_error)
    app.add_exception_handler(SQLAlchemyError, _handle_db_error)
