"""
Tests for Token Service.

Tests signing, rotation, refresh compare-and-set and revocation.
"""

import asyncio
import hashlib
from datetime import timedelta
from uuid import uuid4

import jwt
import pytest

from supportdesk.db.stores import UserStore
from supportdesk.exceptions import AccessDeniedError
from supportdesk.services.tokens import ALGORITHM, TokenCodec, TokenService


class TestTokenCodec:
    """Tests for pure signing and verification."""

    def test_issue_signs_distinct_kinds(self, token_codec: TokenCodec):
        """Access and refresh tokens are signed with different secrets."""
        user_id = uuid4()
        pair = token_codec.issue(user_id, "a@example.com")

        access = token_codec.decode_access(pair.access_token)
        refresh = token_codec.decode_refresh(pair.refresh_token)

        assert access.sub == user_id
        assert refresh.sub == user_id
        assert access.email == "a@example.com"

        with pytest.raises(AccessDeniedError):
            token_codec.decode_access(pair.refresh_token)
        with pytest.raises(AccessDeniedError):
            token_codec.decode_refresh(pair.access_token)

    def test_lifetimes(self, token_codec: TokenCodec):
        """Refresh token outlives access token."""
        pair = token_codec.issue(uuid4(), "a@example.com")
        access = token_codec.decode_access(pair.access_token)
        refresh = token_codec.decode_refresh(pair.refresh_token)
        assert refresh.exp - access.exp > timedelta(days=6).total_seconds()

    def test_same_second_pairs_differ(self, token_codec: TokenCodec):
        """Two pairs minted back to back are different strings."""
        user_id = uuid4()
        first = token_codec.issue(user_id, "a@example.com")
        second = token_codec.issue(user_id, "a@example.com")
        assert first.refresh_token != second.refresh_token
        assert first.access_token != second.access_token

    def test_expired_token_denied(self):
        """A token past its exp is refused."""
        codec = TokenCodec("access", "refresh", timedelta(seconds=-1), timedelta(days=1))
        pair = codec.issue(uuid4(), "a@example.com")
        with pytest.raises(AccessDeniedError) as exc_info:
            codec.decode_access(pair.access_token)
        assert exc_info.value.message == "Access Denied"

    def test_garbage_token_denied(self, token_codec: TokenCodec):
        """Malformed strings are refused."""
        with pytest.raises(AccessDeniedError):
            token_codec.decode_access("not-a-jwt")

    def test_missing_subject_denied(self, token_codec: TokenCodec):
        """A correctly signed token without sub is refused."""
        token = jwt.encode(
            {"email": "a@example.com", "exp": 9999999999},
            token_codec.access_secret,
            algorithm=ALGORITHM,
        )
        with pytest.raises(AccessDeniedError):
            token_codec.decode_access(token)

    def test_non_uuid_subject_denied(self, token_codec: TokenCodec):
        """A subject that is not a user id is refused."""
        token = jwt.encode(
            {"sub": "42", "exp": 9999999999},
            token_codec.access_secret,
            algorithm=ALGORITHM,
        )
        with pytest.raises(AccessDeniedError):
            token_codec.decode_access(token)


class TestRotation:
    """Tests for rotate, verify_long_lived and revoke."""

    def test_hash_token_is_sha256(self):
        """hash_token uses SHA-256."""
        assert TokenService.hash_token("abc") == hashlib.sha256(b"abc").hexdigest()

    @pytest.mark.asyncio
    async def test_login_rotates(self, token_service: TokenService, customer):
        """A fresh pair's refresh token is the current one."""
        pair = await token_service.login(customer)

        assert await token_service.verify_long_lived(customer.id, pair.refresh_token) is True
        refreshed = await token_service.users.get_by_id(customer.id)
        assert refreshed.hashed_rt == TokenService.hash_token(pair.refresh_token)

    @pytest.mark.asyncio
    async def test_rotation_invalidates_previous(self, token_service: TokenService, customer):
        """Only the latest rotated token verifies."""
        first = await token_service.login(customer)
        second = await token_service.login(customer)

        assert await token_service.verify_long_lived(customer.id, first.refresh_token) is False
        assert await token_service.verify_long_lived(customer.id, second.refresh_token) is True

    @pytest.mark.asyncio
    async def test_verify_unknown_user(self, token_service: TokenService):
        """Unknown users never verify."""
        assert await token_service.verify_long_lived(uuid4(), "anything") is False

    @pytest.mark.asyncio
    async def test_verify_without_session(self, token_service: TokenService, customer):
        """A user who never logged in has nothing to verify against."""
        assert await token_service.verify_long_lived(customer.id, "anything") is False

    @pytest.mark.asyncio
    async def test_rotate_unknown_user_denied(self, token_service: TokenService):
        """Rotating for a missing user fails."""
        with pytest.raises(AccessDeniedError):
            await token_service.rotate(uuid4(), "token")

    @pytest.mark.asyncio
    async def test_revoke_clears_session(self, token_service: TokenService, customer):
        """After revoke, the previous refresh token no longer verifies."""
        pair = await token_service.login(customer)
        await token_service.revoke(customer.id)

        assert await token_service.verify_long_lived(customer.id, pair.refresh_token) is False
        with pytest.raises(AccessDeniedError):
            await token_service.refresh(customer.id, pair.refresh_token)


class TestRefresh:
    """Tests for the refresh compare-and-set."""

    @pytest.mark.asyncio
    async def test_refresh_returns_new_pair(self, token_service: TokenService, customer):
        """Refreshing rotates to the new refresh token."""
        pair = await token_service.login(customer)
        new_pair = await token_service.refresh(customer.id, pair.refresh_token)

        assert new_pair.refresh_token != pair.refresh_token
        assert await token_service.verify_long_lived(customer.id, new_pair.refresh_token)
        assert not await token_service.verify_long_lived(customer.id, pair.refresh_token)

    @pytest.mark.asyncio
    async def test_stale_token_denied(self, token_service: TokenService, customer):
        """A refresh token that was rotated away cannot be reused."""
        pair = await token_service.login(customer)
        await token_service.refresh(customer.id, pair.refresh_token)

        with pytest.raises(AccessDeniedError):
            await token_service.refresh(customer.id, pair.refresh_token)

    @pytest.mark.asyncio
    async def test_concurrent_refresh_single_winner(self, token_service: TokenService, customer):
        """Two refreshes with the same token: at most one succeeds."""
        pair = await token_service.login(customer)

        results = await asyncio.gather(
            token_service.refresh(customer.id, pair.refresh_token),
            token_service.refresh(customer.id, pair.refresh_token),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, AccessDeniedError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert await token_service.verify_long_lived(customer.id, successes[0].refresh_token)

    @pytest.mark.asyncio
    async def test_compare_and_set_single_winner_across_sessions(
        self, monkeypatch, session_factory, token_service: TokenService, token_codec, customer
    ):
        """Without the in-process lock, the conditional update alone picks one winner."""
        monkeypatch.setattr(
            TokenService, "_lock_for", classmethod(lambda cls, user_id: asyncio.Lock())
        )
        pair = await token_service.login(customer)
        both_read = asyncio.Barrier(2)
        seen: list[str] = []

        class BarrierUserStore(UserStore):
            async def compare_and_set_rt_hash(self, user_id, expected, new):
                seen.append(expected)
                await both_read.wait()
                return await super().compare_and_set_rt_hash(user_id, expected, new)

        async with session_factory() as first, session_factory() as second:
            results = await asyncio.gather(
                TokenService(BarrierUserStore(first), token_codec).refresh(
                    customer.id, pair.refresh_token
                ),
                TokenService(BarrierUserStore(second), token_codec).refresh(
                    customer.id, pair.refresh_token
                ),
                return_exceptions=True,
            )

        assert len(seen) == 2 and seen[0] == seen[1]
        successes = [r for r in results if not isinstance(r, BaseException)]
        failures = [r for r in results if isinstance(r, AccessDeniedError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert await token_service.verify_long_lived(customer.id, successes[0].refresh_token)

    @pytest.mark.asyncio
    async def test_compare_and_set_rejects_mismatch(self, user_store, customer):
        """The conditional update writes nothing when expected is stale."""
        await user_store.set_rt_hash(customer.id, "a" * 64)

        assert await user_store.compare_and_set_rt_hash(customer.id, "b" * 64, "c" * 64) is False
        assert await user_store.compare_and_set_rt_hash(customer.id, "a" * 64, "c" * 64) is True
        assert (await user_store.get_by_id(customer.id)).hashed_rt == "c" * 64
