"""
Connection Authenticator - Verifies a realtime connection at handshake.

The credential may arrive in one of three carriers; each is an extractor and
the first one that yields a token wins:

1. explicit auth payload field ``token``
2. the access-token cookie inside the Cookie header
3. ``Authorization: Bearer <token>``

Claims are verified once, at accept time, and never refreshed for the life of
the connection.
"""

from collections.abc import Callable, Sequence

from starlette.requests import cookie_parser
from structlog import get_logger

from supportdesk.exceptions import AccessDeniedError
from supportdesk.models.domain import Handshake, TokenClaims
from supportdesk.observability.metrics import metrics
from supportdesk.services.tokens import TokenCodec

logger = get_logger(__name__)

TokenExtractor = Callable[[Handshake], str | None]


def from_auth_payload(handshake: Handshake) -> str | None:
    """Token supplied explicitly at connection time."""
    return handshake.auth.get("token") or None


def from_cookie(cookie_name: str) -> TokenExtractor:
    """Build an extractor reading the named cookie from the Cookie header."""

    def extract(handshake: Handshake) -> str | None:
        header = handshake.headers.get("cookie")
        if not header:
            return None
        return cookie_parser(header).get(cookie_name) or None

    return extract


def from_bearer_header(handshake: Handshake) -> str | None:
    """Token from an ``Authorization: Bearer`` header."""
    header = handshake.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def default_extractors(cookie_name: str) -> list[TokenExtractor]:
    """Carriers in priority order."""
    return [from_auth_payload, from_cookie(cookie_name), from_bearer_header]


class ConnectionAuthenticator:
    """Turns a handshake into verified claims or refuses it."""

    def __init__(self, codec: TokenCodec, extractors: Sequence[TokenExtractor]):
        self.codec = codec
        self.extractors = list(extractors)

    def extract(self, handshake: Handshake) -> str | None:
        """First non-empty credential across the carriers."""
        for extractor in self.extractors:
            token = extractor(handshake)
            if token:
                return token
        return None

    def authenticate(self, handshake: Handshake) -> TokenClaims:
        """
        Verify the handshake's credential as an access token.

        Raises:
            AccessDeniedError: missing, malformed, expired or mis-signed token
        """
        token = self.extract(handshake)
        if token is None:
            logger.warning("realtime_handshake_no_token")
            metrics.realtime_rejections_total.inc()
            raise AccessDeniedError()

        try:
            claims = self.codec.decode_access(token)
        except AccessDeniedError:
            metrics.realtime_rejections_total.inc()
            raise

        logger.debug("realtime_handshake_accepted", user_id=str(claims.sub))
        return claims
