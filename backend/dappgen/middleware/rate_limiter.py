"""
Rate limiting middleware.

Uses slowapi to enforce per-IP request rate limits. Routes opt into the
stricter limits below with @limiter.limit().
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from dappgen.middleware.error_handler import error_body
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])

# LLM-backed endpoints (generation / optimization)
AI_RATE_LIMIT = "10/minute"

# Endpoints that spend deployer gas
DEPLOY_RATE_LIMIT = "5/minute"

COMPILE_RATE_LIMIT = "20/minute"


def setup_rate_limiter(app: FastAPI, enabled: bool = True) -> None:
    """Register the slowapi limiter and its error handler on the app."""
    limiter.enabled = enabled
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
        logger.warning("Rate limit exceeded: %s", exc.detail)
        return JSONResponse(
            status_code=429,
            content=error_body("RATE_LIMIT_EXCEEDED", f"Too many requests. {exc.detail}"),
        )
