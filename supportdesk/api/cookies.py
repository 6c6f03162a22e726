"""
Token cookies - HttpOnly, SameSite=lax, max-age equal to the token TTL.
"""

from starlette.responses import Response

from supportdesk.config import Settings, get_settings
from supportdesk.models.domain import TokenPair


def set_token_cookies(
    response: Response, tokens: TokenPair, settings: Settings | None = None
) -> None:
    """Attach both tokens to the response as cookies."""
    settings = settings or get_settings()
    common = {
        "httponly": True,
        "samesite": "lax",
        "secure": settings.cookie_secure,
        "domain": settings.cookie_domain,
        "path": "/",
    }
    response.set_cookie(
        settings.access_cookie_name,
        tokens.access_token,
        max_age=settings.access_token_ttl_minutes * 60,
        **common,  # type: ignore[arg-type]
    )
    response.set_cookie(
        settings.refresh_cookie_name,
        tokens.refresh_token,
        max_age=settings.refresh_token_ttl_days * 24 * 3600,
        **common,  # type: ignore[arg-type]
    )


def clear_token_cookies(response: Response, settings: Settings | None = None) -> None:
    """Expire both token cookies."""
    settings = settings or get_settings()
    for name in (settings.access_cookie_name, settings.refresh_cookie_name):
        response.delete_cookie(
            name,
            path="/",
            domain=settings.cookie_domain,
            secure=settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )
