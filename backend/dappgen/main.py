"""
FastAPI application entry point.

create_app() is the composition root: it builds the services once, keeps them
on app.state, registers middleware (CORS, rate limiting, error handling,
request logging, body size limit), mounts the routers and defines the
health-check endpoint.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from dappgen.config import Settings, get_settings
from dappgen.dependencies import Services, build_services
from dappgen.middleware.cors import setup_cors
from dappgen.middleware.error_handler import setup_error_handlers
from dappgen.middleware.input_size_limiter import InputSizeLimitMiddleware
from dappgen.middleware.rate_limiter import setup_rate_limiter
from dappgen.middleware.request_logger import RequestLoggerMiddleware
from dappgen.routes.auth import router as auth_router
from dappgen.routes.chain import router as chain_router
from dappgen.routes.compile import router as compile_router
from dappgen.routes.sessions import router as sessions_router
from dappgen.routes.users import router as users_router
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

VERSION = "1.0.0"


async def _verify_dependencies(services: Services) -> None:
    """Check solc and the deployer wallet; problems are only logged."""
    try:
        await asyncio.to_thread(services.solc.ensure_installed)
        logger.info("✅ solc %s ready", services.solc.solc_version)
    except Exception as exc:
        logger.warning("⚠️  solc %s unavailable, compilation will fail: %s", services.solc.solc_version, exc)

    if services.chain.deployer is None:
        logger.warning("⚠️  DEPLOYER_PRIVATE_KEY not set. Deployment is disabled.")
    elif await services.chain.is_wallet_ready():
        logger.info("✅ Deployer %s funded on the expected network", services.chain.deployer.address)
    else:
        logger.warning("⚠️  Deployer wallet is unfunded or on the wrong network.")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: runs on startup and shutdown."""
    services: Services = app.state.services
    settings = services.settings
    logger.info(
        "dApp generator API started  env=%s  origins=%s  store=%s  model=%s",
        settings.ENVIRONMENT,
        settings.allowed_origins_list,
        settings.user_store_backend,
        settings.OPENROUTER_MODEL,
    )
    await _verify_dependencies(services)
    yield
    logger.info("dApp generator API shutting down")


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or (services.settings if services else get_settings())

    app = FastAPI(
        title="TEN dApp Generator API",
        version=VERSION,
        description="Generate, compile and deploy TEN Network contracts",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    # ── Middleware ────────────────────────────────────────────
    setup_cors(app, settings)
    setup_error_handlers(app)
    setup_rate_limiter(app, enabled=settings.RATE_LIMIT_ENABLED)
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(InputSizeLimitMiddleware, max_bytes=settings.MAX_REQUEST_BYTES)

    # ── Routes ────────────────────────────────────────────────
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(compile_router, prefix="/api/v1")
    app.include_router(users_router, prefix="/api/v1")
    app.include_router(sessions_router, prefix="/api/v1")
    app.include_router(chain_router, prefix="/api/v1")

    # ── Health Check ──────────────────────────────────────────
    @app.get("/health", tags=["system"])
    async def health_check() -> dict:
        """Return API health status."""
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
