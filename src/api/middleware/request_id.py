"""
Request correlation and access logging.

Every request gets an ID (the client's X-Request-ID when it sends a usable
one) that is echoed on the response and bound to the logging context, so
engine log lines and audit rows of one request can be matched up.
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from src.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
RESPONSE_TIME_HEADER = "X-Response-Time-Ms"
MAX_REQUEST_ID_LENGTH = 128


def _accept_request_id(value: Optional[str]) -> Optional[str]:
    """Client IDs are kept only when short and printable."""
    if not value:
        return None
    value = value.strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Assign a request ID, time the request and log it.

    Requests slower than ``slow_request_ms`` are logged at WARNING.
    """

    def __init__(self, app, slow_request_ms: int = 1000):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = _accept_request_id(request.headers.get(REQUEST_ID_HEADER)) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            response.headers[REQUEST_ID_HEADER] = request_id
            response.headers[RESPONSE_TIME_HEADER] = f"{duration_ms:.1f}"

            extra = {
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 1),
            }
            if duration_ms > self.slow_request_ms:
                logger.warning("Slow request", extra=extra)
            else:
                logger.debug("Request handled", extra=extra)
            return response
        finally:
            request_id_var.reset(token)
