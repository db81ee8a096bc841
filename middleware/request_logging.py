"""
Per-request id and access log.

The id comes from an incoming X-Request-ID header (so a client can correlate
a submission with its polls) or is generated, and is echoed back on the
response. Only method, path, status and duration are logged: headers, bodies
and query strings can hold tokens or report ids.
"""
import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from config.logging_config import reset_request_id, set_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# hit by load balancers and by clients polling a pending report
QUIET_PATHS = {"/health", "/report"}


def _request_id_from(request: Request) -> str:
    incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex


def _level_for(path: str, status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.DEBUG if path in QUIET_PATHS else logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _request_id_from(request)
        request.state.request_id = request_id
        token = set_request_id(request_id)
        path = request.scope.get("path", "")
        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.log(
                _level_for(path, response.status_code),
                "request_finished method=%s path=%s status=%s duration_ms=%.1f",
                request.method, path, response.status_code, elapsed_ms,
            )
        finally:
            reset_request_id(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
