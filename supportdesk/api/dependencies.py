"""
FastAPI Dependencies - Credential extraction and service wiring.

NO DICTIONARIES - All dependencies return typed objects.
"""

from datetime import timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from supportdesk.config import get_settings
from supportdesk.db.session import get_db
from supportdesk.db.stores import TicketStore, UserStore
from supportdesk.exceptions import AccessDeniedError
from supportdesk.models.domain import TokenClaims
from supportdesk.services.auth import AuthService
from supportdesk.services.email import SendGridMailer
from supportdesk.services.google_oauth import GoogleOAuthProvider
from supportdesk.services.links import LinkMailer, OneTimeLinkService
from supportdesk.services.realtime import RealtimeNotifier, get_notifier
from supportdesk.services.tickets import TicketAuthorizationEngine
from supportdesk.services.tokens import TokenCodec, TokenService

logger = get_logger(__name__)

# Bearer token scheme, accepted when no access cookie is present
bearer_scheme = HTTPBearer(auto_error=False)

# Process-wide singletons (stateless or connection-pooled)
_token_codec: TokenCodec | None = None
_mailer: SendGridMailer | None = None
_oauth_provider: GoogleOAuthProvider | None = None


# ============================================================================
# Singletons
# ============================================================================


def get_token_codec() -> TokenCodec:
    """Get the token codec singleton."""
    global _token_codec

    if _token_codec is None:
        settings = get_settings()
        _token_codec = TokenCodec(
            access_secret=settings.AT_SECRET,
            refresh_secret=settings.RT_SECRET,
            access_ttl=timedelta(minutes=settings.access_token_ttl_minutes),
            refresh_ttl=timedelta(days=settings.refresh_token_ttl_days),
        )
    return _token_codec


def get_mailer() -> LinkMailer:
    """Get the SendGrid mailer singleton."""
    global _mailer

    if _mailer is None:
        settings = get_settings()
        _mailer = SendGridMailer(
            api_key=settings.SENDGRID_API_KEY,
            from_email=settings.SENDGRID_FROM_EMAIL,
            app_url=settings.app_url,
            link_ttl_minutes=settings.magic_link_ttl_minutes,
        )
    return _mailer


def get_oauth_provider() -> GoogleOAuthProvider | None:
    """Get the Google OAuth provider singleton, or None when not configured."""
    global _oauth_provider

    settings = get_settings()
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        return None

    if _oauth_provider is None:
        _oauth_provider = GoogleOAuthProvider(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            callback_url=settings.GOOGLE_CALLBACK_URL,
        )
    return _oauth_provider


async def close_clients() -> None:
    """Close outbound HTTP clients at shutdown."""
    if _mailer is not None:
        await _mailer.close()
    if _oauth_provider is not None:
        await _oauth_provider.close()


# ============================================================================
# Per-request services
# ============================================================================


def get_token_service(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> TokenService:
    """TokenService bound to the request's session."""
    return TokenService(UserStore(db), codec)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenService = Depends(get_token_service),
    mailer: LinkMailer = Depends(get_mailer),
    oauth_provider: GoogleOAuthProvider | None = Depends(get_oauth_provider),
) -> AuthService:
    """AuthService bound to the request's session."""
    settings = get_settings()
    users = UserStore(db)
    links = OneTimeLinkService(
        users,
        mailer,
        secret=settings.SESSION_SECRET,
        ttl=timedelta(minutes=settings.magic_link_ttl_minutes),
    )
    return AuthService(users, tokens, links, oauth_provider)


def get_ticket_engine(db: AsyncSession = Depends(get_db)) -> TicketAuthorizationEngine:
    """TicketAuthorizationEngine bound to the request's session."""
    return TicketAuthorizationEngine(UserStore(db), TicketStore(db))


def get_realtime_notifier() -> RealtimeNotifier:
    """Process-wide realtime notifier."""
    return get_notifier()


# ============================================================================
# Credentials
# ============================================================================


async def get_current_claims(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    codec: TokenCodec = Depends(get_token_codec),
) -> TokenClaims:
    """
    Verified access-token claims of the caller.

    Reads the access cookie, falling back to Authorization: Bearer.

    Raises:
        AccessDeniedError: no token, or token invalid or expired
    """
    token = request.cookies.get(get_settings().access_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials

    if not token:
        logger.info("request_without_access_token", path=request.url.path)
        raise AccessDeniedError()

    return codec.decode_access(token)


async def get_refresh_cookie(request: Request) -> str:
    """
    Raw refresh token from its cookie.

    Raises:
        AccessDeniedError: cookie absent
    """
    token = request.cookies.get(get_settings().refresh_cookie_name)
    if not token:
        raise AccessDeniedError()
    return token
