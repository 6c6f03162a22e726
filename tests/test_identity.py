"""
Tests for Identity Linker.

Tests create-or-update of users from Google profiles.
"""

import pytest
from argon2 import PasswordHasher

from supportdesk.models.domain import ExternalProfile
from supportdesk.services.identity import IdentityLinker


def google_profile(email: str = "gina@example.com", **overrides) -> ExternalProfile:
    fields = {
        "provider_id": "google-123",
        "email": email,
        "first_name": "Gina",
        "last_name": "Lopez",
        "display_name": "Gina Lopez",
        "profile_image": "https://img.example/gina.png",
        "locale": "en",
    }
    fields.update(overrides)
    return ExternalProfile(**fields)


class TestExternalProfile:
    """Tests for profile validation."""

    def test_requires_email(self):
        """A profile without email is rejected."""
        with pytest.raises(ValueError):
            google_profile(email="")

    def test_requires_provider_id(self):
        """A profile without the provider's id is rejected."""
        with pytest.raises(ValueError):
            google_profile(provider_id="")


class TestLinkExternalIdentity:
    """Tests for link_external_identity."""

    @pytest.mark.asyncio
    async def test_creates_google_user(self, user_store):
        """Unknown email creates a passwordless Google account."""
        user = await IdentityLinker(user_store).link_external_identity(google_profile())

        assert user.email == "gina@example.com"
        assert user.is_google_account is True
        assert user.google_id == "google-123"
        assert user.hash is None
        assert user.first_name == "Gina"
        assert user.provider == "google"
        assert user.role == "CUSTOMER"

    @pytest.mark.asyncio
    async def test_updates_existing_and_keeps_password(self, user_store):
        """Linking a password account keeps its password hash."""
        password_hash = PasswordHasher().hash("pw")
        existing = await user_store.create("gina@example.com", hash=password_hash)

        user = await IdentityLinker(user_store).link_external_identity(
            google_profile(display_name="G. Lopez")
        )

        assert user.id == existing.id
        assert user.hash == password_hash
        assert user.is_google_account is True
        assert user.display_name == "G. Lopez"

    @pytest.mark.asyncio
    async def test_idempotent(self, user_store):
        """The same profile twice converges to one user."""
        linker = IdentityLinker(user_store)
        first = await linker.link_external_identity(google_profile())
        second = await linker.link_external_identity(google_profile())

        assert first.id == second.id
        assert second.profile_image == "https://img.example/gina.png"
