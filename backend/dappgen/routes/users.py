"""
User record routes.

Thin HTTP face over AccountService, used by the front end to read a user and
report token usage.
"""

from fastapi import APIRouter, Depends, Query, Request

from dappgen.dependencies import Services, get_services
from dappgen.middleware.error_handler import AppException
from dappgen.middleware.rate_limiter import limiter
from dappgen.models.schemas import (
    ErrorResponse,
    TokenStatus,
    TokenUsageUpdate,
    UserData,
    UserLookupResponse,
)
from dappgen.services.token_budget import TOTAL_MAX

router = APIRouter(prefix="/users", tags=["users"])


@router.get(
    "",
    response_model=UserLookupResponse,
    responses={400: {"model": ErrorResponse, "description": "Missing userId"}},
    summary="Look up a user record",
)
async def get_user(
    user_id: str = Query("", alias="userId", max_length=128),
    services: Services = Depends(get_services),
) -> UserLookupResponse:
    """``data`` is null for an unknown user."""
    if not user_id:
        raise AppException(status_code=400, error_code="MISSING_USER_ID", message="User ID is required")
    return UserLookupResponse(data=await services.accounts.get_user(user_id))


@router.put(
    "",
    response_model=UserData,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown user and no userData given"},
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    },
    summary="Add to a user's token usage",
)
@limiter.limit("30/minute")
async def update_user_usage(
    request: Request,
    body: TokenUsageUpdate,
    services: Services = Depends(get_services),
) -> UserData:
    """tokenUsage is a delta added to the stored total."""
    return await services.accounts.apply_usage_delta(body.user_id, body.token_usage, body.user_data)


@router.get(
    "/{user_id}/tokens",
    response_model=TokenStatus,
    summary="Quota status for a pending request",
)
async def get_token_status(
    user_id: str,
    required: int = Query(0, ge=0, le=TOTAL_MAX),
    services: Services = Depends(get_services),
) -> TokenStatus:
    return await services.accounts.check_tokens(user_id, required)
