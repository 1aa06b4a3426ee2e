import sys
from pathlib import Path
from contextvars import ContextVar
from typing import Optional
from loguru import logger
from fastapi import Request
from datakit.config import settings

# Current request, for trace ids in async code paths
_current_request: ContextVar[Optional[Request]] = ContextVar("current_request", default=None)

LOG_DIR = Path(settings.LOG_DIR)


class LogConfig:
    """Global logging configuration using Loguru."""

    @classmethod
    def setup_logging(cls, level: Optional[str] = None):
        level = level or settings.LOG_LEVEL
        LOG_DIR.mkdir(exist_ok=True)
        logger.remove()

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            diagnose=settings.DEBUG,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<magenta>Trace:{extra[trace_id]}</magenta> - <level>{message}</level>"
            ),
            level=level,
        )

        logger.add(
            LOG_DIR / "bookshelf_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            enqueue=True,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | Trace:{extra[trace_id]} - {message}",
            level="DEBUG",
        )

        logger.add(
            LOG_DIR / "error_{time:YYYY-MM-DD}.log",
            level="ERROR",
            rotation="100 MB",
            enqueue=True,
        )

        logger.configure(extra={"trace_id": "system"})


def get_logger(name: str = None, request: Optional[Request] = None):
    """Get logger bound to a component name and the trace id of the current request."""
    current_request = request or _current_request.get()

    extra = {"component": name} if name else {}
    if current_request is not None:
        extra["trace_id"] = getattr(current_request.state, "trace_id", "unknown")
    # Without a request the trace id comes from logger.contextualize() or the default
    return logger.bind(**extra)
