"""
Email sender - Magic links over the SendGrid v3 mail API.
"""

from urllib.parse import urlencode

import httpx
from structlog import get_logger

from supportdesk.exceptions import LinkDeliveryError
from supportdesk.models.domain import LinkIntent

logger = get_logger(__name__)

_SUBJECTS = {
    LinkIntent.SIGNUP: ("Your Magic Link to Sign In", "Complete Your Registration", "Complete Signup"),
    LinkIntent.LOGIN: ("Your Magic Link to Sign In", "Sign In", "Sign In"),
}


class SendGridMailer:
    """Sends one-time links through SendGrid."""

    SEND_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        app_url: str,
        link_ttl_minutes: int = 10,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.from_email = from_email
        self.app_url = app_url.rstrip("/")
        self.link_ttl_minutes = link_ttl_minutes
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    def build_link(self, token: str) -> str:
        """Absolute verification URL for a link token."""
        return f"{self.app_url}/auth/verify-magic-link?{urlencode({'token': token})}"

    def render(self, link: str, intent: LinkIntent) -> str:
        """HTML body for the link email."""
        _, heading, button = _SUBJECTS[intent]
        return f"""
      <div style="font-family: Arial, sans-serif; padding: 20px;">
        <h2>{heading}</h2>
        <p>Click the button below to continue (link expires in {self.link_ttl_minutes} minutes):</p>
        <a href="{link}"
           style="background-color: #4CAF50; color: white; padding: 14px 20px;
                  text-align: center; text-decoration: none; display: inline-block;
                  border-radius: 4px;">
          {button}
        </a>
        <p style="color: #666; margin-top: 20px;">
          If you didn't request this, please ignore this email.
        </p>
      </div>
    """

    async def send_magic_link(self, email: str, token: str, intent: LinkIntent) -> None:
        """
        Deliver the link.

        Raises:
            LinkDeliveryError: SendGrid refused the message or was unreachable
        """
        subject, _, _ = _SUBJECTS[intent]
        message = {
            "personalizations": [{"to": [{"email": email}]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": [{"type": "text/html", "value": self.render(self.build_link(token), intent)}],
        }

        try:
            response = await self.http_client.post(
                self.SEND_URL,
                json=message,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                "sendgrid_send_failed", status=e.response.status_code, text=e.response.text
            )
            raise LinkDeliveryError() from e
        except httpx.HTTPError as e:
            logger.error("sendgrid_send_error", error=str(e))
            raise LinkDeliveryError() from e

        logger.debug("sendgrid_message_accepted", email=email, intent=intent.value)

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
