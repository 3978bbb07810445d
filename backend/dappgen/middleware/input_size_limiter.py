"""
Request body size limit.

Rejects requests whose Content-Length exceeds the configured maximum with
HTTP 413 before the body is read. Solidity sources sent for compilation or
deployment are the largest legitimate payloads.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from dappgen.middleware.error_handler import error_body
from dappgen.utils.logger import get_logger

logger = get_logger("size_limit")


class InputSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose Content-Length exceeds *max_bytes*."""

    def __init__(self, app, max_bytes: int = 100_000) -> None:  # noqa: ANN001
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            length = int(request.headers.get("content-length") or 0)
        except ValueError:
            length = 0

        if length > self.max_bytes:
            logger.warning(
                "Payload too large: %d bytes (limit %d)  %s %s",
                length,
                self.max_bytes,
                request.method,
                request.url.path,
            )
            return JSONResponse(
                status_code=413,
                content=error_body(
                    "PAYLOAD_TOO_LARGE",
                    f"Request body ({length:,} bytes) exceeds the maximum "
                    f"allowed size ({self.max_bytes:,} bytes).",
                ),
            )

        return await call_next(request)
