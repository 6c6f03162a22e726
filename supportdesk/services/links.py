"""
One-Time Link Service - Magic links for deferred signup and passwordless login.

A signup link carries the not-yet-hashed password inside the signed token, so
no pending-user table exists: the account is created only when the emailed
link comes back. Links are single use: verified tokens are recorded in the
consumed-link ledger until they expire.
"""

import hashlib
import time
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar, Protocol

import jwt
from argon2 import PasswordHasher
from structlog import get_logger

from supportdesk.db.models import User
from supportdesk.db.stores import UserStore
from supportdesk.exceptions import ConflictError, InvalidLinkError, LinkDeliveryError
from supportdesk.models.domain import LinkIntent, LinkPayload
from supportdesk.observability.metrics import metrics

logger = get_logger(__name__)

ALGORITHM = "HS256"


class LinkMailer(Protocol):
    """Outbound mail collaborator."""

    async def send_magic_link(self, email: str, token: str, intent: LinkIntent) -> None:
        """Deliver a link; raise LinkDeliveryError on failure."""
        ...


class ConsumedLinkLedger:
    """
    Hashes of one-time tokens that were already verified.

    Entries live until the token's own expiry, after which the signature
    check rejects the token anyway. Class-level, so shared by every service
    instance in the process.
    """

    # Key: token_hash, Value: token exp (epoch seconds)
    _consumed: ClassVar[dict[str, float]] = {}
    _last_cleanup: ClassVar[float] = 0
    _CLEANUP_INTERVAL: ClassVar[int] = 60

    @staticmethod
    def hash_token(token: str) -> str:
        """Hash a token using SHA-256."""
        return hashlib.sha256(token.encode()).hexdigest()

    def consume(self, token: str, expires_at: float) -> bool:
        """Mark token consumed. False if it already was."""
        self._cleanup_if_needed()
        token_hash = self.hash_token(token)
        if token_hash in ConsumedLinkLedger._consumed:
            return False
        ConsumedLinkLedger._consumed[token_hash] = expires_at
        return True

    def release(self, token: str) -> None:
        """Forget a consumed token so it can be verified again."""
        ConsumedLinkLedger._consumed.pop(self.hash_token(token), None)

    def is_consumed(self, token: str) -> bool:
        """Check whether a token was already verified."""
        return self.hash_token(token) in ConsumedLinkLedger._consumed

    def _cleanup_if_needed(self) -> None:
        now = time.time()
        if now - ConsumedLinkLedger._last_cleanup < ConsumedLinkLedger._CLEANUP_INTERVAL:
            return
        ConsumedLinkLedger._last_cleanup = now
        expired = [h for h, exp in ConsumedLinkLedger._consumed.items() if exp < now]
        for h in expired:
            del ConsumedLinkLedger._consumed[h]


class OneTimeLinkService:
    """Mints, mails and verifies one-time links."""

    def __init__(
        self,
        users: UserStore,
        mailer: LinkMailer,
        secret: str,
        ttl: timedelta,
        ledger: ConsumedLinkLedger | None = None,
    ):
        self.users = users
        self.mailer = mailer
        self.secret = secret
        self.ttl = ttl
        self.ledger = ledger or ConsumedLinkLedger()
        self.password_hasher = PasswordHasher()

    def _sign(self, claims: dict[str, Any]) -> str:
        now = datetime.now(UTC)
        payload = {**claims, "iat": now, "exp": now + self.ttl}
        return jwt.encode(payload, self.secret, algorithm=ALGORITHM)

    async def _deliver(self, email: str, token: str, intent: LinkIntent) -> None:
        try:
            await self.mailer.send_magic_link(email, token, intent)
        except LinkDeliveryError:
            metrics.record_magic_link(intent.value, "delivery_failed")
            logger.error("magic_link_delivery_failed", email=email, intent=intent.value)
            raise
        metrics.record_magic_link(intent.value, "sent")
        logger.info("magic_link_sent", email=email, intent=intent.value)

    async def create_signup_link(
        self, email: str, raw_password: str, first_name: str | None = None
    ) -> None:
        """
        Mail a link that completes signup when followed.

        Raises:
            ConflictError: email already registered
            LinkDeliveryError: mail could not be sent
        """
        if await self.users.get_by_email(email) is not None:
            logger.info("signup_link_conflict", email=email)
            raise ConflictError("Email already registered")

        claims: dict[str, Any] = {
            "email": email,
            "password": raw_password,
            "type": LinkIntent.SIGNUP.value,
        }
        if first_name:
            claims["first_name"] = first_name
        token = self._sign(claims)
        await self._deliver(email, token, LinkIntent.SIGNUP)

    async def create_login_link(self, email: str) -> None:
        """Mail a passwordless login link."""
        token = self._sign({"email": email, "type": LinkIntent.LOGIN.value})
        await self._deliver(email, token, LinkIntent.LOGIN)

    def decode(self, token: str) -> LinkPayload:
        """
        Verify signature, expiry and shape of a link token.

        Raises:
            InvalidLinkError: on any verification failure
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp"]},
            )
            return LinkPayload(
                email=str(payload["email"]),
                intent=LinkIntent(payload["type"]),
                exp=int(payload["exp"]),
                password=payload.get("password"),
                first_name=payload.get("first_name"),
            )
        except (jwt.InvalidTokenError, KeyError, ValueError) as e:
            logger.warning("magic_link_invalid", error=type(e).__name__)
            metrics.record_magic_link("verify", "invalid")
            raise InvalidLinkError() from e

    async def verify(self, token: str) -> User:
        """
        Consume a link and create or fetch its user.

        The caller issues and rotates the token pair afterwards. The link is
        claimed before the account write so concurrent verifies cannot both
        succeed; a write that fails for any reason other than a duplicate
        email releases the claim.

        Raises:
            InvalidLinkError: bad, expired or already consumed link
        """
        payload = self.decode(token)

        if not self.ledger.consume(token, payload.exp):
            logger.warning("magic_link_replayed", email=payload.email)
            metrics.record_magic_link("verify", "replayed")
            raise InvalidLinkError()

        try:
            user = await self._complete(payload)
        except InvalidLinkError:
            raise
        except Exception:
            self.ledger.release(token)
            metrics.record_magic_link("verify", "error")
            logger.error("magic_link_verify_failed", email=payload.email, exc_info=True)
            raise

        metrics.record_magic_link("verify", "ok")
        return user

    async def _complete(self, payload: LinkPayload) -> User:
        if payload.intent is not LinkIntent.SIGNUP:
            return await self._get_or_create_passwordless(payload.email)

        if not payload.password:
            raise InvalidLinkError()
        try:
            user = await self.users.create(
                payload.email,
                hash=self.password_hasher.hash(payload.password),
                first_name=payload.first_name,
                is_google_account=False,
            )
        except ConflictError as e:
            metrics.record_magic_link("verify", "conflict")
            raise InvalidLinkError() from e
        logger.info("signup_completed", user_id=str(user.id), email=user.email)
        return user

    async def _get_or_create_passwordless(self, email: str) -> User:
        user = await self.users.get_by_email(email)
        if user is not None:
            return user
        try:
            user = await self.users.create(email, is_google_account=False)
        except ConflictError:
            # Created concurrently by another login
            user = await self.users.get_by_email(email)
            if user is None:
                raise
        logger.info("passwordless_user_created", user_id=str(user.id), email=email)
        return user
