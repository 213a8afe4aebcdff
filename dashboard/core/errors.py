"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``install_exception_handlers`` turns them into
``{"error": <message>}`` JSON responses with the matching status code.
"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dashboard.core.config import settings

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(DashboardError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(DashboardError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Unauthorized(DashboardError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DashboardError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(DashboardError):
    status_code = status.HTTP_409_CONFLICT


class InvalidState(Conflict):
    """The entity exists but its lifecycle state forbids the operation."""


def error_body(message, **extra) -> dict:
    return {"error": message, **extra}


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DashboardError)
    async def dashboard_error_handler(request: Request, exc: DashboardError):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("Validation error", details=details),
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Store failure on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("Internal server error"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        if settings.is_production():
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=error_body("Internal server error"),
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(str(exc), debug=True),
        )
