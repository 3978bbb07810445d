"""
Wizard session routes.

Each session holds one AppState. Every mutating endpoint returns the full
session snapshot so the client can re-render from it.
"""

from fastapi import APIRouter, Depends, Request

from dappgen.dependencies import Services, get_services
from dappgen.middleware.rate_limiter import AI_RATE_LIMIT, DEPLOY_RATE_LIMIT, limiter
from dappgen.models.schemas import (
    ContractActionRequest,
    CreateSessionRequest,
    ErrorResponse,
    OptimizationCategory,
    SessionResponse,
    SubmitMessageRequest,
    WalletDeployRequest,
)
from dappgen.services.ai_service import OPTIMIZATION_CATEGORIES
from dappgen.services.wizard_service import Session
from dappgen.state.wizard import can_optimize, token_usage_summary

router = APIRouter(tags=["wizard"])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Unknown session"}}
_CONFLICT = {409: {"model": ErrorResponse, "description": "Not allowed in the current wizard state"}}


def _snapshot(session: Session) -> SessionResponse:
    return SessionResponse(
        session_id=session.id,
        user_id=session.user_id,
        state=session.state,
        can_optimize=can_optimize(session.state),
        token_usage=token_usage_summary(session.state),
    )


@router.post("/sessions", response_model=SessionResponse, status_code=201, summary="Start a wizard session")
async def create_session(
    body: CreateSessionRequest | None = None,
    services: Services = Depends(get_services),
) -> SessionResponse:
    user_id = body.user_id if body else None
    return _snapshot(services.sessions.create(user_id))


@router.get("/sessions/{session_id}", response_model=SessionResponse, responses=_NOT_FOUND)
async def get_session(session_id: str, services: Services = Depends(get_services)) -> SessionResponse:
    return _snapshot(services.sessions.get(session_id))


@router.post(
    "/sessions/{session_id}/messages",
    response_model=SessionResponse,
    responses={
        **_NOT_FOUND,
        **_CONFLICT,
        400: {"model": ErrorResponse, "description": "Empty or too long"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
    summary="Describe a dApp or request an optimization",
)
@limiter.limit(AI_RATE_LIMIT)
async def submit_message(
    request: Request,
    session_id: str,
    body: SubmitMessageRequest,
    services: Services = Depends(get_services),
) -> SessionResponse:
    """Model failures and quota refusals come back as error messages in the log."""
    session = services.sessions.get(session_id)
    await services.wizard.submit(session, body.content, body.category)
    return _snapshot(session)


@router.post(
    "/sessions/{session_id}/actions",
    response_model=SessionResponse,
    responses={**_NOT_FOUND, **_CONFLICT},
    summary="Choose to deploy or optimize the generated contract",
)
async def choose_action(
    session_id: str,
    body: ContractActionRequest,
    services: Services = Depends(get_services),
) -> SessionResponse:
    session = services.sessions.get(session_id)
    return _snapshot(services.wizard.choose_action(session, body.action))


@router.post(
    "/sessions/{session_id}/optimization/exit",
    response_model=SessionResponse,
    responses={**_NOT_FOUND, **_CONFLICT},
)
async def exit_optimization(session_id: str, services: Services = Depends(get_services)) -> SessionResponse:
    session = services.sessions.get(session_id)
    return _snapshot(services.wizard.exit_optimization(session))


@router.post(
    "/sessions/{session_id}/deploy",
    response_model=SessionResponse,
    responses={
        **_NOT_FOUND,
        **_CONFLICT,
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
    summary="Deploy the contract and transfer ownership to a wallet",
)
@limiter.limit(DEPLOY_RATE_LIMIT)
async def deploy(
    request: Request,
    session_id: str,
    body: WalletDeployRequest,
    services: Services = Depends(get_services),
) -> SessionResponse:
    """Deployment progress and failures are recorded in the session's deployment state."""
    session = services.sessions.get(session_id)
    await services.wizard.deploy(session, body.wallet_address)
    return _snapshot(session)


@router.post("/sessions/{session_id}/reset", response_model=SessionResponse, responses=_NOT_FOUND)
async def reset_session(session_id: str, services: Services = Depends(get_services)) -> SessionResponse:
    session = services.sessions.get(session_id)
    return _snapshot(services.wizard.reset(session))


@router.get("/optimization-categories", response_model=list[OptimizationCategory])
async def list_optimization_categories() -> list[OptimizationCategory]:
    return OPTIMIZATION_CATEGORIES
