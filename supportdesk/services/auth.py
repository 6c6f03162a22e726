"""
Auth Service - Every way a user ends up holding a token pair.

Password sign-in, one-time links and Google OAuth all finish in
TokenService.login, which issues a pair and rotates it in.
"""

import secrets
import time
from datetime import UTC, datetime
from typing import ClassVar
from uuid import UUID

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from structlog import get_logger

from supportdesk.db.stores import UserStore
from supportdesk.exceptions import AccessDeniedError
from supportdesk.models.api import Role, UserResponse
from supportdesk.models.domain import OAuthSession, TokenPair
from supportdesk.observability.metrics import metrics
from supportdesk.services.google_oauth import GoogleOAuthProvider
from supportdesk.services.identity import IdentityLinker
from supportdesk.services.links import OneTimeLinkService
from supportdesk.services.tokens import TokenService

logger = get_logger(__name__)

OAUTH_SESSION_TTL_SECONDS = 600


class AuthService:
    """Sign-in, sign-up, refresh, logout and OAuth login."""

    # Pending OAuth logins keyed by state. Class-level because a service is
    # built per request; entries expire after OAUTH_SESSION_TTL_SECONDS.
    _sessions: ClassVar[dict[str, tuple[float, OAuthSession]]] = {}

    def __init__(
        self,
        users: UserStore,
        tokens: TokenService,
        links: OneTimeLinkService,
        oauth_provider: GoogleOAuthProvider | None = None,
    ):
        self.users = users
        self.tokens = tokens
        self.links = links
        self.oauth_provider = oauth_provider
        self.identity = IdentityLinker(users)
        self.password_hasher = PasswordHasher()

    # ========================================================================
    # Password and link login
    # ========================================================================

    async def signin(self, email: str, password: str) -> TokenPair:
        """
        Password sign-in.

        Raises:
            AccessDeniedError: unknown email, passwordless account, or mismatch
        """
        user = await self.users.get_by_email(email)
        if user is None or not user.hash:
            logger.warning("signin_denied", email=email, reason="no_password_account")
            metrics.record_auth_event("signin", success=False)
            raise AccessDeniedError()

        try:
            self.password_hasher.verify(user.hash, password)
        except (VerificationError, InvalidHashError):
            logger.warning("signin_denied", email=email, reason="password_mismatch")
            metrics.record_auth_event("signin", success=False)
            raise AccessDeniedError()

        tokens = await self.tokens.login(user)
        metrics.record_auth_event("signin", success=True)
        logger.info("signin_success", user_id=str(user.id))
        return tokens

    async def request_signup(
        self, email: str, password: str, first_name: str | None = None
    ) -> None:
        """Mail a signup link; the account is created when it is followed."""
        await self.links.create_signup_link(email, password, first_name)

    async def request_login_link(self, email: str) -> None:
        """Mail a passwordless login link."""
        await self.links.create_login_link(email)

    async def login_with_link(self, token: str) -> TokenPair:
        """
        Follow a one-time link.

        Raises:
            InvalidLinkError: bad, expired or consumed link
        """
        user = await self.links.verify(token)
        tokens = await self.tokens.login(user)
        metrics.record_auth_event("magic_link", success=True)
        logger.info("magic_link_login", user_id=str(user.id))
        return tokens

    # ========================================================================
    # Session lifecycle
    # ========================================================================

    async def refresh_from_token(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Raises:
            AccessDeniedError: invalid, expired, stale or revoked token
        """
        claims = self.tokens.decode_refresh(refresh_token)
        return await self.tokens.refresh(claims.sub, refresh_token)

    async def logout(self, user_id: UUID) -> bool:
        """Revoke the user's refresh token."""
        await self.tokens.revoke(user_id)
        metrics.record_auth_event("logout", success=True)
        return True

    async def get_profile(self, user_id: UUID) -> UserResponse:
        """
        Profile of the authenticated user.

        Raises:
            AccessDeniedError: the token's subject no longer exists
        """
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise AccessDeniedError()
        return UserResponse(
            id=user.id,
            email=user.email,
            name=user.first_name,
            display_name=user.display_name,
            profile_image=user.profile_image,
            role=Role(user.role),
            is_google_account=user.is_google_account,
        )

    # ========================================================================
    # Google OAuth
    # ========================================================================

    def _require_provider(self) -> GoogleOAuthProvider:
        if self.oauth_provider is None:
            raise AccessDeniedError("Google sign-in is not configured")
        return self.oauth_provider

    @classmethod
    def _prune_sessions(cls) -> None:
        cutoff = time.time() - OAUTH_SESSION_TTL_SECONDS
        for state in [s for s, (ts, _) in cls._sessions.items() if ts < cutoff]:
            del cls._sessions[state]

    def initiate_oauth_flow(self, redirect_url: str) -> str:
        """Remember where to return and get the Google consent URL."""
        provider = self._require_provider()
        self._prune_sessions()

        state = secrets.token_urlsafe(32)
        AuthService._sessions[state] = (
            time.time(),
            OAuthSession(redirect_url=redirect_url, created_at=datetime.now(UTC).isoformat()),
        )
        auth_url = provider.get_authorization_url(state)

        logger.info("oauth_flow_initiated", state=state[:8], auth_url_preview=auth_url[:150])
        return auth_url

    async def handle_oauth_callback(self, code: str, state: str) -> tuple[TokenPair, str]:
        """
        Complete a Google login.

        Returns:
            (tokens, redirect_url) tuple

        Raises:
            AccessDeniedError: unknown state, or Google refused the code
        """
        provider = self._require_provider()
        self._prune_sessions()

        entry = AuthService._sessions.pop(state, None)
        if entry is None:
            logger.warning("invalid_oauth_state", state=state[:8])
            metrics.record_auth_event("google", success=False)
            raise AccessDeniedError()
        _, session = entry

        try:
            token = await provider.exchange_code_for_token(code)
            profile = await provider.get_user_info(token.access_token)
        except ValueError as e:
            logger.warning("oauth_callback_failed", error=str(e))
            metrics.record_auth_event("google", success=False)
            raise AccessDeniedError() from e

        user = await self.identity.link_external_identity(profile)
        tokens = await self.tokens.login(user)

        metrics.record_auth_event("google", success=True)
        logger.info("oauth_login_success", user_id=str(user.id), email=user.email)
        return tokens, session.redirect_url
