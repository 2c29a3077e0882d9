"""Domain error kinds and their HTTP mapping."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import structlog

logger = structlog.get_logger()


class GamificationError(Exception):
    """Base class for errors raised by the gamification engine."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal error"):
        super().__init__(message)
        self.message = message


class InvalidPayloadError(GamificationError):
    """Missing or malformed input, rejected before any write."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(GamificationError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(GamificationError):
    status_code = status.HTTP_409_CONFLICT


class GenerationUnavailableError(GamificationError):
    """The content generator failed or is not configured."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(GamificationError):
    pass


async def gamification_error_handler(request: Request, exc: GamificationError):
    if isinstance(exc, InternalError):
        logger.error("Internal error", path=request.url.path, error=exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error"})

    logger.info(
        "Request rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]
    logger.info("Validation failed", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Invalid request", "errors": errors}
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(GamificationError, gamification_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
