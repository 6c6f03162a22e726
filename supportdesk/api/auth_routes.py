"""
Auth routes - Password, magic link and Google OAuth sign-in.

Tokens travel as HttpOnly cookies; /auth/refresh also returns them in the body.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import RedirectResponse
from structlog import get_logger

from supportdesk.api.cookies import clear_token_cookies, set_token_cookies
from supportdesk.api.dependencies import (
    get_auth_service,
    get_current_claims,
    get_refresh_cookie,
)
from supportdesk.config import get_settings
from supportdesk.exceptions import AccessDeniedError, InvalidLinkError
from supportdesk.models.api import (
    MagicLinkRequest,
    MessageResponse,
    SigninRequest,
    SignupRequest,
    SignupResponse,
    TokenResponse,
)
from supportdesk.models.domain import TokenClaims
from supportdesk.services.auth import AuthService

logger = get_logger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/signin", response_model=MessageResponse)
async def signin(
    request: SigninRequest,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Password sign-in; sets the token cookies."""
    tokens = await auth_service.signin(request.email, request.password)
    set_token_cookies(response, tokens)
    return MessageResponse(message="Login successful")


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    request: SignupRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> SignupResponse:
    """
    Start a signup.

    No account exists until the emailed link is followed.
    """
    await auth_service.request_signup(request.email, request.password, request.first_name)
    return SignupResponse(
        message="Signup successful. Please check your email for a magic link",
        email=request.email,
    )


@router.post("/magic-link", response_model=MessageResponse)
async def send_magic_link(
    request: MagicLinkRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Mail a passwordless login link."""
    await auth_service.request_login_link(request.email)
    return MessageResponse(message="Magic link sent to your email")


@router.get("/verify-magic-link")
async def verify_magic_link(
    token: str,
    auth_service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Follow a one-time link, then redirect to the frontend."""
    settings = get_settings()
    try:
        tokens = await auth_service.login_with_link(token)
    except InvalidLinkError as e:
        logger.info("magic_link_redirect_error")
        return RedirectResponse(
            url=f"{settings.frontend_url}/error?message={quote(e.message)}",
            status_code=status.HTTP_302_FOUND,
        )

    redirect = RedirectResponse(url=settings.frontend_url, status_code=status.HTTP_302_FOUND)
    set_token_cookies(redirect, tokens)
    return redirect


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    response: Response,
    refresh_token: str = Depends(get_refresh_cookie),
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """Rotate the refresh token and return a new pair."""
    tokens = await auth_service.refresh_from_token(refresh_token)
    set_token_cookies(response, tokens)
    return TokenResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)


@router.post("/logout")
async def logout(
    response: Response,
    claims: TokenClaims = Depends(get_current_claims),
    auth_service: AuthService = Depends(get_auth_service),
) -> bool:
    """Revoke the refresh token and clear the cookies."""
    clear_token_cookies(response)
    result = await auth_service.logout(claims.sub)
    logger.info("user_logout", user_id=str(claims.sub))
    return result


@router.get("/google/init")
async def google_init(
    redirect_url: str | None = None,
    auth_service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """
    Initiate Google OAuth login flow.

    Query params:
        redirect_url: Where to send the browser after login (default: frontend)
    """
    auth_url = auth_service.initiate_oauth_flow(redirect_url or get_settings().frontend_url)
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@router.get("/google/callback")
async def google_callback(
    code: str,
    state: str,
    auth_service: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Handle Google OAuth callback; failures go back to the sign-in page."""
    settings = get_settings()
    try:
        tokens, redirect_url = await auth_service.handle_oauth_callback(code, state)
    except AccessDeniedError:
        return RedirectResponse(
            url=f"{settings.frontend_url}/signin", status_code=status.HTTP_302_FOUND
        )

    redirect = RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)
    set_token_cookies(redirect, tokens)
    return redirect
