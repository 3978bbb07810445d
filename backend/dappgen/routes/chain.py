"""
TEN network routes.

GET  /api/v1/chain/status    network, deployer balance and readiness.
POST /api/v1/chain/estimate  deployment cost of a contract in ether.
"""

from fastapi import APIRouter, Depends, Request

from dappgen.dependencies import Services, get_services
from dappgen.middleware.rate_limiter import COMPILE_RATE_LIMIT, limiter
from dappgen.models.schemas import (
    ChainStatusResponse,
    ErrorResponse,
    EstimateRequest,
    EstimateResponse,
)

router = APIRouter(prefix="/chain", tags=["chain"])

_CHAIN_ERRORS = {
    502: {"model": ErrorResponse, "description": "TEN node error"},
    503: {"model": ErrorResponse, "description": "No deployer key configured"},
}


@router.get("/status", response_model=ChainStatusResponse, responses=_CHAIN_ERRORS)
async def chain_status(services: Services = Depends(get_services)) -> ChainStatusResponse:
    chain = services.chain
    network = await chain.get_network_info()
    balance = await chain.check_balance()
    return ChainStatusResponse(
        chain_id=network.chain_id,
        name=network.name,
        deployer=chain.deployer.address,
        balance=balance,
        ready=float(balance) > 0 and network.chain_id == chain.expected_chain_id,
    )


@router.post(
    "/estimate",
    response_model=EstimateResponse,
    responses={
        **_CHAIN_ERRORS,
        400: {"model": ErrorResponse, "description": "Compilation error"},
    },
    summary="Estimate the cost of deploying a contract",
)
@limiter.limit(COMPILE_RATE_LIMIT)
async def estimate_cost(
    request: Request,
    body: EstimateRequest,
    services: Services = Depends(get_services),
) -> EstimateResponse:
    cost = await services.chain.estimate_deployment_cost(body.source_code)
    return EstimateResponse(estimated_cost=cost)
