"""
Google OAuth provider for customer and agent sign-in.

Authorization-code flow: build the consent URL, exchange the code, then read
the profile from the userinfo endpoint.
"""

from urllib.parse import urlencode

import httpx
from structlog import get_logger

from supportdesk.models.domain import ExternalProfile, OAuthToken

logger = get_logger(__name__)


class GoogleOAuthProvider:
    """Google OAuth provider implementation."""

    AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        callback_url: str,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.callback_url = callback_url
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    def get_authorization_url(self, state: str) -> str:
        """Consent screen URL for the email and profile scopes."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.callback_url,
            "response_type": "code",
            "scope": "openid email profile",
            "state": state,
            "prompt": "select_account",
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def exchange_code_for_token(self, code: str) -> OAuthToken:
        """Exchange authorization code for access token."""
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.callback_url,
            "grant_type": "authorization_code",
        }

        try:
            response = await self.http_client.post(self.TOKEN_URL, data=data)
            response.raise_for_status()
            token_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "token_exchange_failed", status=e.response.status_code, text=e.response.text
            )
            raise ValueError(f"Failed to exchange code: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("token_exchange_error", error=str(e))
            raise ValueError("Failed to exchange authorization code") from e

        if "access_token" not in token_data:
            raise ValueError("Token response has no access_token")

        return OAuthToken(
            access_token=token_data["access_token"],
            token_type=token_data.get("token_type", "Bearer"),
            expires_in=token_data.get("expires_in"),
            refresh_token=token_data.get("refresh_token"),
        )

    async def get_user_info(self, access_token: str) -> ExternalProfile:
        """Get the user's Google profile."""
        try:
            response = await self.http_client.get(
                self.USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
            response.raise_for_status()
            user_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "user_info_fetch_failed", status=e.response.status_code, text=e.response.text
            )
            raise ValueError(f"Failed to get user info: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("user_info_error", error=str(e))
            raise ValueError("Failed to get user information") from e

        # ExternalProfile rejects a profile without id or email
        return ExternalProfile(
            provider_id=str(user_data.get("id", "")),
            email=user_data.get("email", ""),
            first_name=user_data.get("given_name"),
            last_name=user_data.get("family_name"),
            display_name=user_data.get("name"),
            profile_image=user_data.get("picture"),
            locale=user_data.get("locale"),
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
