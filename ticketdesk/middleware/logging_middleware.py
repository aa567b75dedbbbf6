"""
Request logging middleware

Every request gets a short request id (taken from X-Request-ID when the
gateway relay sends one) that is echoed back in the response headers, so a
relayed interaction can be traced across both processes.
"""
import time
from typing import Callable
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

QUIET_PATHS = {"/api/health", "/"}
REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of each request"""

    async def dispatch(self, request: Request, call_next: Callable):
        if request.url.path in QUIET_PATHS:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex[:12]
        request.state.request_id = request_id
        started = time.perf_counter()
        label = f"[{request_id}] {request.method} {request.url.path}"

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            logger.error(f"{label} failed after {elapsed_ms}ms: {e}", exc_info=True)
            raise

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if response.status_code >= 500:
            logger.error(f"{label} -> {response.status_code} ({elapsed_ms}ms)")
        elif response.status_code >= 400:
            logger.warning(f"{label} -> {response.status_code} ({elapsed_ms}ms)")
        else:
            logger.info(f"{label} -> {response.status_code} ({elapsed_ms}ms)")

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Process-Time"] = str(elapsed_ms)
        return response
