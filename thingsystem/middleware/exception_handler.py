"""Maps ThingSystemError to JSON error responses."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from ..exceptions import ThingSystemError

logger = logging.getLogger(__name__)


async def thing_system_exception_handler(request: Request, exc: ThingSystemError) -> JSONResponse:
    """Return ``{error, message, details}`` with the exception's status code.

    Client errors are logged at WARNING, server-side failures at ERROR.
    """
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "%s %s -> %s: %s", request.method, request.url.path, exc.error_code.value, exc.message,
        extra={"error_code": exc.error_code.value, "status_code": exc.status_code, "details": exc.details},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
