"""Unit tests for TokenIssuer (access tokens and refresh-token rotation)."""

from datetime import timedelta

import pytest
import pytest_asyncio

from common.auth import JWTCodec
from identity.errors import (
    AccountBlocked,
    AccountNotFound,
    InvalidAccessToken,
    RefreshTokenExpired,
    RefreshTokenNotFound,
)
from identity.models import Account, Role, NO_USER_AGENT, utcnow
from identity.services.token_hasher import TokenHasher
from identity.services.token_issuer import TokenIssuer
from identity.stores import new_account_id


# ─────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def codec():
    return JWTCodec(secret="test-secret", expire_minutes=5)


@pytest.fixture
def issuer(token_store, identity_store, codec):
    return TokenIssuer(token_store, identity_store, codec, refresh_expire_days=30)


@pytest.fixture
def account():
    return Account(id=new_account_id(), name="A", surname="B", email="a@x.com", passwordHash="x")


@pytest_asyncio.fixture
async def stored_account(identity_store, account):
    return await identity_store.create(account)


# ─────────────────────────────────────────────────────────────────
# Access tokens
# ─────────────────────────────────────────────────────────────────


class TestAccessTokens:
    def test_claims_round_trip(self, issuer, account):
        token = issuer.issue_access_token(account)

        claims = issuer.decode_access_token(token)

        assert claims.id == account.id
        assert claims.email == "a@x.com"
        assert claims.roles == [Role.USER]

    def test_bearer_prefix_accepted(self, issuer, account):
        token = issuer.issue_access_token(account)

        assert issuer.decode_access_token(f"Bearer {token}").id == account.id

    @pytest.mark.parametrize("token", [None, "", "Bearer ", "garbage"])
    def test_invalid_tokens(self, issuer, token):
        with pytest.raises(InvalidAccessToken):
            issuer.decode_access_token(token)

    def test_expired_token(self, token_store, identity_store, account):
        expired = TokenIssuer(token_store, identity_store, JWTCodec(secret="test-secret", expire_minutes=-1))
        token = expired.issue_access_token(account)

        with pytest.raises(InvalidAccessToken):
            expired.decode_access_token(token)

    def test_token_signed_elsewhere(self, issuer, token_store, identity_store, account):
        other = TokenIssuer(token_store, identity_store, JWTCodec(secret="other-secret"))

        with pytest.raises(InvalidAccessToken):
            issuer.decode_access_token(other.issue_access_token(account))


# ─────────────────────────────────────────────────────────────────
# Refresh tokens
# ─────────────────────────────────────────────────────────────────


class TestRotate:
    @pytest.mark.asyncio
    async def test_stores_only_the_hash(self, issuer, token_store, account):
        value, stored = await issuer.rotate_refresh_token(account, "ua-1")

        assert stored.valueHash == TokenHasher.hash_token(value)
        assert stored.valueHash != value
        assert stored.device == "ua-1"

    @pytest.mark.asyncio
    async def test_expiry_is_one_month(self, issuer, account):
        _, stored = await issuer.rotate_refresh_token(account, "ua-1")

        remaining = stored.expiresAt - utcnow()
        assert timedelta(days=29) < remaining <= timedelta(days=30)

    @pytest.mark.asyncio
    async def test_one_token_per_device(self, issuer, token_store, account):
        first, _ = await issuer.rotate_refresh_token(account, "ua-1")
        second, _ = await issuer.rotate_refresh_token(account, "ua-1")

        assert first != second
        assert await token_store.count_for_account(account.id) == 1
        assert await token_store.find(TokenHasher.hash_token(first)) is None

    @pytest.mark.asyncio
    async def test_blank_device_is_normalised(self, issuer, account):
        _, stored = await issuer.rotate_refresh_token(account, "  ")

        assert stored.device == NO_USER_AGENT


class TestConsume:
    @pytest.mark.asyncio
    async def test_single_use(self, issuer, stored_account):
        value, _ = await issuer.rotate_refresh_token(stored_account, "ua-1")

        account, pair = await issuer.consume_refresh_token(value, "ua-1")

        assert account.id == stored_account.id
        assert pair.refreshToken != value
        with pytest.raises(RefreshTokenNotFound):
            await issuer.consume_refresh_token(value, "ua-1")

    @pytest.mark.asyncio
    async def test_devices_are_independent(self, issuer, token_store, stored_account):
        phone, _ = await issuer.rotate_refresh_token(stored_account, "phone")
        laptop, _ = await issuer.rotate_refresh_token(stored_account, "laptop")

        await issuer.consume_refresh_token(phone, "phone")

        assert await token_store.find(TokenHasher.hash_token(laptop), "laptop") is not None
        assert await token_store.count_for_account(stored_account.id) == 2

    @pytest.mark.asyncio
    async def test_defaults_to_token_device(self, issuer, token_store, stored_account):
        value, _ = await issuer.rotate_refresh_token(stored_account, "phone")

        _, pair = await issuer.consume_refresh_token(value)

        renewed = await token_store.find(TokenHasher.hash_token(pair.refreshToken))
        assert renewed.device == "phone"

    @pytest.mark.asyncio
    async def test_expired_token_is_deleted(self, issuer, token_store, stored_account):
        value = "expired-value"
        await token_store.upsert(
            stored_account.id, "ua-1", TokenHasher.hash_token(value), utcnow() - timedelta(seconds=1)
        )

        with pytest.raises(RefreshTokenExpired):
            await issuer.consume_refresh_token(value, "ua-1")
        assert await token_store.count_all() == 0

    @pytest.mark.asyncio
    async def test_unknown_and_empty_values(self, issuer):
        with pytest.raises(RefreshTokenNotFound):
            await issuer.consume_refresh_token("nope")
        with pytest.raises(RefreshTokenNotFound):
            await issuer.consume_refresh_token(None)

    @pytest.mark.asyncio
    async def test_deleted_account(self, issuer, account):
        value, _ = await issuer.rotate_refresh_token(account, "ua-1")

        with pytest.raises(AccountNotFound):
            await issuer.consume_refresh_token(value, "ua-1")

    @pytest.mark.asyncio
    async def test_blocked_account(self, issuer, identity_store, stored_account):
        value, _ = await issuer.rotate_refresh_token(stored_account, "ua-1")
        await identity_store.update(stored_account.id, {"isBlocked": True})

        with pytest.raises(AccountBlocked):
            await issuer.consume_refresh_token(value, "ua-1")


class TestFindAndRevoke:
    @pytest.mark.asyncio
    async def test_find_requires_matching_device(self, issuer, account):
        value, _ = await issuer.rotate_refresh_token(account, "phone")

        assert (await issuer.find_refresh_token(value, "phone")).accountId == account.id
        with pytest.raises(RefreshTokenNotFound):
            await issuer.find_refresh_token(value, "laptop")

    @pytest.mark.asyncio
    async def test_revoke_all_for_account(self, issuer, token_store, account):
        await issuer.rotate_refresh_token(account, "phone")
        await issuer.rotate_refresh_token(account, "laptop")

        assert await issuer.revoke_all_for_account(account.id) == 2
        assert await token_store.count_all() == 0

    @pytest.mark.asyncio
    async def test_revoke_single(self, issuer, account):
        value, _ = await issuer.rotate_refresh_token(account, "phone")

        assert await issuer.revoke_refresh_token(value) is True
        assert await issuer.revoke_refresh_token(value) is False
