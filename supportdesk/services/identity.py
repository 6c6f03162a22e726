"""
Identity Linker - Reconciles an external (Google) identity with a local user.

Independent of password credentials: linking never touches User.hash, so an
account may hold both a Google identity and a local password.
"""

from structlog import get_logger

from supportdesk.db.models import User
from supportdesk.db.stores import UserStore
from supportdesk.exceptions import ConflictError
from supportdesk.models.domain import ExternalProfile

logger = get_logger(__name__)


def _profile_fields(profile: ExternalProfile) -> dict[str, str | bool | None]:
    return {
        "google_id": profile.provider_id,
        "is_google_account": True,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "display_name": profile.display_name,
        "profile_image": profile.profile_image,
        "locale": profile.locale,
        "provider": profile.provider,
    }


class IdentityLinker:
    """Create-or-update of users from external profiles."""

    def __init__(self, users: UserStore):
        self.users = users

    async def link_external_identity(self, profile: ExternalProfile) -> User:
        """
        Get the user for profile.email, creating or refreshing it.

        Idempotent: the same profile always converges to the same stored state.
        """
        fields = _profile_fields(profile)
        user = await self.users.get_by_email(profile.email)

        if user is None:
            try:
                user = await self.users.create(profile.email, hash=None, **fields)
            except ConflictError:
                # Lost a race with a concurrent first login; update instead
                user = await self.users.get_by_email(profile.email)
                if user is None:
                    raise
            else:
                logger.info(
                    "external_user_created",
                    user_id=str(user.id),
                    email=user.email,
                    provider=profile.provider,
                )
                return user

        for name, value in fields.items():
            setattr(user, name, value)
        await self.users.save(user)

        logger.info(
            "external_identity_linked",
            user_id=str(user.id),
            email=user.email,
            provider=profile.provider,
            has_password=user.hash is not None,
        )
        return user
