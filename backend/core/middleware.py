"""
Request middleware: request ids and access logging
"""

import re
import time
import uuid
import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Incoming ids are logged verbatim; only short plain tokens are accepted
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Paths logged only on error
QUIET_PATHS = ("/health",)


def resolve_request_id(request: Request) -> str:
    """Reuse a well-formed incoming request id, or mint a new one"""
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_PATTERN.match(incoming):
        return incoming
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to request state and to the response headers"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log with status and timing; error statuses log as warnings"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = getattr(request.state, "request_id", "unknown")
        path = request.url.path
        quiet = any(path.startswith(p) for p in QUIET_PATHS)

        start_time = time.perf_counter()
        if not quiet:
            logger.debug(
                f"[{request_id}] {request.method} {path} "
                f"- Client: {request.client.host if request.client else 'unknown'}"
            )

        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        # For streamed responses (events, archives) this is time to first byte
        if response.status_code >= 400:
            logger.warning(
                f"[{request_id}] {request.method} {path} "
                f"- Status: {response.status_code} - Time: {process_time:.3f}s"
            )
        elif not quiet:
            logger.info(
                f"[{request_id}] {request.method} {path} "
                f"- Status: {response.status_code} - Time: {process_time:.3f}s"
            )

        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        return response
