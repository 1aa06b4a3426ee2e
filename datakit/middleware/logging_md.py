import time
import uuid
from fastapi import Request
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from datakit.logging.logger import _current_request

TRACE_HEADER = "X-Trace-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Assigns a trace id to every request and logs its start, end and duration."""

    async def dispatch(self, request: Request, call_next):
        trace_id = request.headers.get(TRACE_HEADER) or uuid.uuid4().hex
        request.state.trace_id = trace_id
        token = _current_request.set(request)

        with logger.contextualize(trace_id=trace_id):
            started = time.perf_counter()
            logger.info(f"{request.method} {request.url.path} started")
            try:
                response = await call_next(request)
            except Exception as e:
                elapsed = (time.perf_counter() - started) * 1000
                logger.error(f"{request.method} {request.url.path} failed after {elapsed:.2f}ms: {e}")
                raise
            finally:
                _current_request.reset(token)

            elapsed = (time.perf_counter() - started) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.2f}ms"
            )
            response.headers[TRACE_HEADER] = trace_id
            return response
