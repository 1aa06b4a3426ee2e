from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any
from datakit.config import settings
from datakit.exceptions.errors import (
    CancellationError,
    DataAccessError,
    ValidationError,
)
from datakit.logging.logger import get_logger
from datakit.response import ResponseModel

logger = get_logger("exception_handler")


class BusinessException(Exception):
    """Use-case level failure; ``code`` goes into the response envelope."""

    def __init__(self, message: str, status_code: int = 200, code: int = 400, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.detail = detail


def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    trace_id = getattr(request.state, "trace_id", "unknown")

    if isinstance(exc, BusinessException):
        logger.warning(f"Trace[{trace_id}] - BusinessError: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ResponseModel.fail(code=exc.code, message=exc.message, data=exc.detail)
        )

    if isinstance(exc, RequestValidationError):
        logger.error(f"Trace[{trace_id}] - RequestValidationError: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ResponseModel.fail(
                code=422, message="Invalid request parameters", data=jsonable_encoder(exc.errors())
            )
        )

    if isinstance(exc, ValidationError):
        logger.warning(f"Trace[{trace_id}] - ConstraintViolation: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=ResponseModel.fail(code=409, message="Data conflict")
        )

    if isinstance(exc, CancellationError):
        logger.info(f"Trace[{trace_id}] - Cancelled: {exc.message}")
        return JSONResponse(
            status_code=499,
            content=ResponseModel.fail(code=499, message="Request cancelled")
        )

    if isinstance(exc, DataAccessError):
        logger.critical(f"Trace[{trace_id}] - DataAccessError: {exc.message}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ResponseModel.fail(code=500, message="Service temporarily unavailable")
        )

    logger.opt(exception=True).error(f"Trace[{trace_id}] - UncaughtException: {str(exc)}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ResponseModel.fail(
            code=500,
            message="System busy, please try again later",
            data={"trace_id": trace_id} if settings.DEBUG else None
        )
    )
