"""Error kinds raised below the HTTP layer and how each one is reported."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from config import get_settings
from logging_config import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg", "invalid request"))
    return "; ".join(parts) or "Invalid request"


async def app_error_handler(request: Request, exc: AppError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": _validation_message(exc)},
    )


def mark_logged(exc: Exception) -> None:
    """Flag ``exc`` as already reported by the code that raised it."""
    exc.already_logged = True


def _internal_error_response(request: Request, exc: Exception, event: str) -> JSONResponse:
    if not getattr(exc, "already_logged", False):
        logger.error(
            event,
            method=request.method,
            path=request.url.path,
            user_id=getattr(request.state, "user_id", None),
            error=str(exc),
            exc_info=exc,
        )
    content = {"detail": "Internal server error"}
    if get_settings().is_development:
        content["error_detail"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


async def store_error_handler(request: Request, exc: SQLAlchemyError):
    return _internal_error_response(request, exc, "store_error")


async def unhandled_error_handler(request: Request, exc: Exception):
    return _internal_error_response(request, exc, "unhandled_error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)
    # runs in the outermost middleware, after the more specific handlers above
    app.add_exception_handler(Exception, unhandled_error_handler)
