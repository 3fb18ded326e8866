"""
Request context middleware.

Tags every request with an X-Request-ID (incoming header or a new UUID4)
so throttle decisions, audit records and alert failures logged while
handling it can be correlated. The source address set by the login guard
is cleared when the request ends.

Usage in main.py:
    app.add_middleware(RequestContextMiddleware)  # Add LAST so it runs FIRST
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from throttleguard.utils.structured_logger import clear_context, get_logger, set_request_id

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Propagate a request ID into log context and the response headers."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        set_request_id(request_id)
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.debug(
                "Request completed",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                }
            )
            return response

        except Exception as e:
            logger.error(
                "Request failed with exception",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            raise

        finally:
            clear_context()
