"""
Compile route.

POST /api/v1/compile compiles a single Solidity file with the local solc and
returns the ABI and creation bytecode of the first contract found. Failures
answer with ``{"error": "<first compiler message>"}`` rather than the usual
envelope, the body hosted compile endpoints return.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from dappgen.dependencies import Services, get_services
from dappgen.middleware.error_handler import AppException
from dappgen.middleware.rate_limiter import COMPILE_RATE_LIMIT, limiter
from dappgen.models.schemas import CompileErrorResponse, CompileRequest, CompileResponse, ErrorResponse
from dappgen.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/compile", tags=["compile"])


@router.post(
    "",
    response_model=CompileResponse,
    responses={
        400: {"model": CompileErrorResponse, "description": "Compilation error"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        503: {"model": CompileErrorResponse, "description": "solc not available"},
    },
    summary="Compile Solidity to ABI + bytecode",
)
@limiter.limit(COMPILE_RATE_LIMIT)
async def compile_solidity(
    request: Request,
    body: CompileRequest,
    services: Services = Depends(get_services),
):
    logger.info("Compile request  size=%d", len(body.source_code))
    try:
        return await services.solc.compile(body.source_code)
    except AppException as exc:
        logger.warning("Compilation failed  code=%s: %s", exc.error_code, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=CompileErrorResponse(error=exc.message).model_dump(),
        )
