"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID


@dataclass(frozen=True)
class TokenPair:
    """Short-lived access token plus long-lived refresh token."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    sub: UUID
    email: str
    exp: int
    jti: str | None = None


class LinkIntent(str, Enum):
    """What a one-time link does when it is verified."""

    SIGNUP = "signup"
    LOGIN = "login"


@dataclass(frozen=True)
class LinkPayload:
    """Verified one-time link claims."""

    email: str
    intent: LinkIntent
    exp: int
    password: str | None = None
    first_name: str | None = None

    def __post_init__(self) -> None:
        """Signup links must carry the password that completes the signup."""
        if not self.email:
            raise ValueError("email cannot be empty")
        if self.intent is LinkIntent.SIGNUP and not self.password:
            raise ValueError("signup link without password")


@dataclass(frozen=True)
class ExternalProfile:
    """Identity asserted by an external provider (Google)."""

    provider_id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    display_name: str | None = None
    profile_image: str | None = None
    locale: str | None = None
    provider: str = "google"

    def __post_init__(self) -> None:
        """Validate the provider supplied an identity."""
        if not self.email:
            raise ValueError("External profile has no email")
        if not self.provider_id:
            raise ValueError("External profile has no provider id")


@dataclass(frozen=True)
class OAuthToken:
    """OAuth token data."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class OAuthSession:
    """Pending OAuth login, keyed by state."""

    redirect_url: str
    created_at: str


@dataclass(frozen=True)
class Handshake:
    """
    Credential carriers presented when a realtime connection opens.

    auth holds the explicit auth payload; headers are lower-cased.
    """

    auth: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
