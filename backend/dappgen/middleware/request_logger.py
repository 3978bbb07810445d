"""
Request logging middleware.

Logs method, path, status, duration and client IP for every request and tags
the response with an X-Request-ID. Request bodies are never logged: they carry
OAuth codes and wallet addresses.
"""

from __future__ import annotations

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from dappgen.utils.logger import get_logger

logger = get_logger("request")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Access log line per request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        client_ip = request.client.host if request.client else "unknown"

        logger.info(
            "%s %s → %d  %.1fms  ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            client_ip,
            extra={"request_id": request_id},
        )
        response.headers["X-Request-ID"] = request_id
        return response
