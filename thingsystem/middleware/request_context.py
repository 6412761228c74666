"""Per-request id, timing headers and one access log line per request.

An incoming ``X-Request-ID`` is reused; otherwise a short random id is
minted. The id is bound to the logging context for the duration of the
request and echoed back together with ``X-Response-Time``.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from ..core.logging_config import request_id_var

logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            response.headers.update({
                "X-Request-ID": request_id,
                "X-Response-Time": f"{elapsed_ms}ms",
            })
            logger.info(
                "%s %s -> %d (%.1fms)", request.method, request.url.path, response.status_code, elapsed_ms,
                extra={
                    "http_method": request.method,
                    "http_path": request.url.path,
                    "http_status": response.status_code,
                    "elapsed_ms": elapsed_ms,
                },
            )
            return response
        finally:
            request_id_var.reset(token)
