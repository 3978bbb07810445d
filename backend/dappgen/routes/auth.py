"""
Discord login routes.

GET  /api/v1/auth/discord/url  authorize URL for the login button.
POST /api/v1/auth/discord      exchange the OAuth code, return the user record.
"""

from fastapi import APIRouter, Depends, Request

from dappgen.dependencies import Services, get_services
from dappgen.middleware.rate_limiter import limiter
from dappgen.models.schemas import AuthUrlResponse, DiscordAuthRequest, ErrorResponse, UserData

router = APIRouter(prefix="/auth/discord", tags=["auth"])


@router.get("/url", response_model=AuthUrlResponse, summary="Discord authorize URL")
async def discord_authorize_url(services: Services = Depends(get_services)) -> AuthUrlResponse:
    return AuthUrlResponse(url=services.discord.authorize_url())


@router.post(
    "",
    response_model=UserData,
    responses={
        429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
        502: {"model": ErrorResponse, "description": "Discord rejected the code or is unreachable"},
    },
    summary="Log in with a Discord authorization code",
)
@limiter.limit("10/minute")
async def discord_login(
    request: Request,
    body: DiscordAuthRequest,
    services: Services = Depends(get_services),
) -> UserData:
    """Create the user on first login, otherwise return it with the usage window rolled."""
    return await services.discord.authenticate(body.code)
