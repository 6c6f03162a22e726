"""
Token Service - Access/refresh token pairs with a single revocation point.

Tokens are stateless HS256 JWTs. The only server-side state is
User.hashed_rt, the SHA-256 of the one refresh token currently valid for the
user; rotating it invalidates every earlier refresh token, clearing it logs
the user out.

SECURITY: raw tokens are never stored or logged, only hash prefixes.
"""

import asyncio
import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar
from uuid import UUID
from weakref import WeakValueDictionary

import jwt
from structlog import get_logger

from supportdesk.db.models import User
from supportdesk.db.stores import UserStore
from supportdesk.exceptions import AccessDeniedError
from supportdesk.models.domain import TokenClaims, TokenPair
from supportdesk.observability.metrics import metrics

logger = get_logger(__name__)

ALGORITHM = "HS256"


class TokenCodec:
    """
    Pure signing and verification of access/refresh tokens.

    Distinct secrets and lifetimes per kind. No storage.
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    def _sign(self, user_id: UUID, email: str, secret: str, ttl: timedelta) -> str:
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "sub": str(user_id),
            "email": email,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, secret, algorithm=ALGORITHM)

    def issue(self, user_id: UUID, email: str) -> TokenPair:
        """Sign a fresh access/refresh pair. No side effects."""
        return TokenPair(
            access_token=self._sign(user_id, email, self.access_secret, self.access_ttl),
            refresh_token=self._sign(user_id, email, self.refresh_secret, self.refresh_ttl),
        )

    @staticmethod
    def _decode(token: str, secret: str, kind: str) -> TokenClaims:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
            return TokenClaims(
                sub=UUID(str(payload["sub"])),
                email=str(payload.get("email", "")),
                exp=int(payload["exp"]),
                jti=payload.get("jti"),
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("jwt_token_expired", kind=kind)
            raise AccessDeniedError() from e
        except (jwt.InvalidTokenError, ValueError) as e:
            logger.warning("jwt_token_invalid", kind=kind, error=str(e))
            raise AccessDeniedError() from e

    def decode_access(self, token: str) -> TokenClaims:
        """Verify an access token. Raises AccessDeniedError."""
        return self._decode(token, self.access_secret, "access")

    def decode_refresh(self, token: str) -> TokenClaims:
        """Verify a refresh token's signature and expiry. Raises AccessDeniedError."""
        return self._decode(token, self.refresh_secret, "refresh")


class TokenService:
    """
    Issues, verifies, rotates and revokes token pairs.

    Usage:
        service = TokenService(UserStore(db), codec)
        tokens = await service.login(user)
        tokens = await service.refresh(user.id, tokens.refresh_token)
        await service.revoke(user.id)
    """

    # Per-user refresh serialisation within this process. The conditional
    # UPDATE in UserStore is what holds across processes.
    _locks: ClassVar["WeakValueDictionary[UUID, asyncio.Lock]"] = WeakValueDictionary()

    def __init__(self, users: UserStore, codec: TokenCodec):
        self.users = users
        self.codec = codec

    @staticmethod
    def hash_token(token: str) -> str:
        """Hash a token using SHA-256 (hex, 64 chars)."""
        return hashlib.sha256(token.encode()).hexdigest()

    @classmethod
    def _lock_for(cls, user_id: UUID) -> asyncio.Lock:
        lock = cls._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            cls._locks[user_id] = lock
        return lock

    def issue(self, user_id: UUID, email: str) -> TokenPair:
        """Sign a fresh access/refresh pair. No side effects."""
        return self.codec.issue(user_id, email)

    def decode_access(self, token: str) -> TokenClaims:
        """Verify an access token. Raises AccessDeniedError."""
        return self.codec.decode_access(token)

    def decode_refresh(self, token: str) -> TokenClaims:
        """Verify a refresh token's signature and expiry. Raises AccessDeniedError."""
        return self.codec.decode_refresh(token)

    # ========================================================================
    # Rotation and revocation
    # ========================================================================

    async def rotate(self, user_id: UUID, refresh_token: str) -> None:
        """Make refresh_token the only valid refresh token for the user."""
        token_hash = self.hash_token(refresh_token)
        if not await self.users.set_rt_hash(user_id, token_hash):
            logger.warning("token_rotation_user_missing", user_id=str(user_id))
            raise AccessDeniedError()

        metrics.token_rotations_total.inc()
        logger.info("token_rotated", user_id=str(user_id), token_hash=token_hash[:16])

    async def verify_long_lived(self, user_id: UUID, candidate: str) -> bool:
        """True only if candidate is the user's current refresh token."""
        user = await self.users.get_by_id(user_id)
        if user is None or not user.hashed_rt:
            return False
        return hmac.compare_digest(user.hashed_rt, self.hash_token(candidate))

    async def revoke(self, user_id: UUID) -> None:
        """Clear the rotating hash; later refresh attempts fail."""
        await self.users.set_rt_hash(user_id, None)
        logger.info("refresh_token_revoked", user_id=str(user_id))

    async def login(self, user: User) -> TokenPair:
        """Issue a pair and rotate it in. Every fresh pair goes through here."""
        tokens = self.issue(user.id, user.email)
        await self.rotate(user.id, tokens.refresh_token)
        return tokens

    async def refresh(self, user_id: UUID, candidate: str) -> TokenPair:
        """
        Exchange the current refresh token for a new pair.

        The comparison and the rotation are one compare-and-set; of two
        refreshes presenting the same token, at most one succeeds.

        Raises:
            AccessDeniedError: no session, stale token, or lost race
        """
        async with self._lock_for(user_id):
            user = await self.users.get_by_id(user_id)
            if user is None or not user.hashed_rt:
                logger.warning("refresh_denied_no_session", user_id=str(user_id))
                metrics.record_auth_event("refresh", success=False)
                raise AccessDeniedError()

            expected = self.hash_token(candidate)
            if not hmac.compare_digest(user.hashed_rt, expected):
                logger.warning(
                    "refresh_denied_stale_token",
                    user_id=str(user_id),
                    token_hash=expected[:16],
                )
                metrics.record_auth_event("refresh", success=False)
                raise AccessDeniedError()

            tokens = self.issue(user.id, user.email)
            new_hash = self.hash_token(tokens.refresh_token)
            if not await self.users.compare_and_set_rt_hash(user.id, expected, new_hash):
                logger.warning("refresh_denied_concurrent_rotation", user_id=str(user_id))
                metrics.record_auth_event("refresh", success=False)
                raise AccessDeniedError()

        metrics.token_rotations_total.inc()
        metrics.record_auth_event("refresh", success=True)
        logger.info("token_refreshed", user_id=str(user_id), token_hash=new_hash[:16])
        return tokens
