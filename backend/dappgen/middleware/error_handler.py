"""
Global error handling.

Defines AppException, the one exception type services raise for anything a
client should see, and registers handlers that turn it (and anything
unexpected) into the standard JSON error envelope.
"""

from __future__ import annotations

import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dappgen.utils.logger import get_logger

logger = get_logger(__name__)


class AppException(Exception):
    """Application-level exception that maps to a structured JSON response."""

    def __init__(
        self,
        status_code: int = 400,
        error_code: str = "BAD_REQUEST",
        message: str = "An error occurred.",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)


def error_body(error_code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Build the error envelope shared by every handler."""
    return {
        "error": True,
        "error_code": error_code,
        "message": message,
        "details": details or {},
    }


def upstream_message(response: Any, fallback: str) -> str:
    """Best-effort human message from an upstream error response."""
    try:
        data = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:300] or fallback

    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        for key in ("message", "error_description"):
            if data.get(key):
                return str(data[key])
    return fallback


def setup_error_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI application."""

    @app.exception_handler(AppException)
    async def app_exception_handler(_request: Request, exc: AppException) -> JSONResponse:
        logger.warning(
            "AppException %s: %s  details=%s",
            exc.error_code,
            exc.message,
            exc.details,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.error_code, exc.message, exc.details),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception: %s\n%s", exc, traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content=error_body(
                "INTERNAL_SERVER_ERROR",
                "An unexpected error occurred. Please try again later.",
            ),
        )
