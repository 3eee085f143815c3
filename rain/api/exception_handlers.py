"""
Exception handlers that turn failures into JSON error bodies

Every error response has the same shape:

    {"error": "<code>", "message": "<human readable text>"}

Validation failures add a "details" list with one entry per bad field.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from rain.core.config import settings
from rain.core.exceptions import RainError, StorageIOError, StorageUnavailableError

logger = logging.getLogger(__name__)

# Driver messages that identify a unique-constraint violation
_UNIQUE_VIOLATION_MARKERS = ("UNIQUE constraint failed", "duplicate key")


def error_body(code: str, message: str, **extra) -> dict:
    return {"error": code, "message": message, **extra}


def render_error(exc: RainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.error, exc.message))


def setup_exception_handlers(app: FastAPI):
    """
    Register the handlers on `app`.

    Call once, right after the app is created:
        app = FastAPI()
        setup_exception_handlers(app)
    """

    @app.exception_handler(RainError)
    async def rain_error_handler(request: Request, exc: RainError):
        if isinstance(exc, StorageIOError):
            # The message is client-safe; the cause carries the path
            logger.error(f"I/O error on {request.url.path}: {exc.message} ({exc.__cause__})")
        elif exc.status_code >= 500:
            logger.error(f"{exc.error} on {request.url.path}: {exc.message}")
        return render_error(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"]),
                "message": err["msg"],
                "type": err["type"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=error_body("validation_error", "Request validation failed", details=details),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(f"Integrity error on {request.url.path}: {exc}")
        reason = str(exc.orig if exc.orig is not None else exc)

        if any(marker in reason for marker in _UNIQUE_VIOLATION_MARKERS):
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content=error_body(
                    "duplicate_entry",
                    "A record with the same path already exists in this bundle",
                ),
            )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("invalid_reference", "Referenced resource does not exist"),
        )

    @app.exception_handler(SQLAlchemyError)
    async def storage_error_handler(request: Request, exc: SQLAlchemyError):
        """The store is unreachable or failed; clients may retry"""
        logger.error(f"Database error on {request.url.path}: {exc}")
        return render_error(StorageUnavailableError("The storage backend is unavailable, please retry"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception on {request.url.path}: {exc}")

        if settings.DEBUG:
            content = error_body("internal_error", str(exc), type=type(exc).__name__)
        else:
            content = error_body("internal_error", "An unexpected error occurred")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)
