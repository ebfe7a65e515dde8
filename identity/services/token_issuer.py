"""
Bearer credentials: short-lived access tokens and rotating refresh tokens.

Access tokens are stateless JWTs carrying {id, email, roles}. Refresh tokens
are opaque random values, single-use, with at most one per (account, device);
the store keeps only their SHA-256 hash.
"""

import logging
from datetime import timedelta
from typing import Optional, Tuple, Dict, Iterable

from pydantic import ValidationError

from common.auth import JWTCodec
from identity.errors import (
    AccountBlocked,
    AccountNotFound,
    InvalidAccessToken,
    RefreshTokenExpired,
    RefreshTokenNotFound,
)
from identity.models import (
    Account,
    AccessClaims,
    RefreshToken,
    TokenPair,
    normalize_device,
    utcnow,
)
from identity.services.token_hasher import TokenHasher
from identity.stores.base import IdentityStore, TokenStore

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


class TokenIssuer:
    """Mints access tokens and manages refresh-token rotation."""

    def __init__(
        self,
        token_store: TokenStore,
        identity_store: IdentityStore,
        codec: JWTCodec,
        refresh_expire_days: int = 30,
    ):
        self._tokens = token_store
        self._accounts = identity_store
        self._codec = codec
        self._refresh_ttl = timedelta(days=refresh_expire_days)

    # =========================================================================
    # Access tokens
    # =========================================================================

    def issue_access_token(self, account: Account) -> str:
        return self._codec.encode(
            account.id,
            id=account.id,
            email=account.email,
            roles=[role.value for role in account.roles],
        )

    def decode_access_token(self, token: Optional[str]) -> AccessClaims:
        """
        Validate signature and expiry and return the claims.

        Accepts an optional ``Bearer `` prefix.

        Raises:
            InvalidAccessToken: For missing, malformed, forged or expired tokens
        """
        if token and token.startswith(BEARER_PREFIX):
            token = token[len(BEARER_PREFIX):]
        if not token:
            raise InvalidAccessToken()

        try:
            payload = self._codec.decode(token.strip())
            return AccessClaims(
                id=payload.get("id") or payload.get("sub"),
                email=payload.get("email"),
                roles=payload.get("roles") or [],
            )
        except (ValueError, ValidationError):
            # pydantic's ValidationError is a ValueError too; both mean a bad token
            raise InvalidAccessToken()

    # =========================================================================
    # Refresh tokens
    # =========================================================================

    async def rotate_refresh_token(self, account: Account, device: Optional[str]) -> Tuple[str, RefreshToken]:
        """
        Replace the refresh token for (account, device) with a fresh value.

        Returns:
            The raw value for the client and the stored record
        """
        device = normalize_device(device)
        value = TokenHasher.generate_token()
        stored = await self._tokens.upsert(
            account.id,
            device,
            TokenHasher.hash_token(value),
            utcnow() + self._refresh_ttl,
        )
        logger.debug(f"Refresh token rotated for account {account.id} on device {device!r}")
        return value, stored

    async def issue_pair(self, account: Account, device: Optional[str]) -> TokenPair:
        value, stored = await self.rotate_refresh_token(account, device)
        return TokenPair(
            accessToken=self.issue_access_token(account),
            refreshToken=value,
            refreshExpiresAt=stored.expiresAt,
        )

    async def consume_refresh_token(
        self,
        value: Optional[str],
        device: Optional[str] = None,
    ) -> Tuple[Account, TokenPair]:
        """
        Exchange a refresh token for a new pair. The presented token is
        deleted whatever the outcome, so it can never be used twice.

        The new pair is scoped to ``device`` when given, otherwise to the
        device the consumed token belonged to.

        Raises:
            RefreshTokenNotFound: Unknown (or already used) value
            RefreshTokenExpired: Token past its expiry
            AccountNotFound: Owning account was deleted
            AccountBlocked: Owning account is blocked
        """
        if not value:
            raise RefreshTokenNotFound()

        token = await self._tokens.take(TokenHasher.hash_token(value))
        if token is None:
            raise RefreshTokenNotFound()
        if token.is_expired():
            logger.info(f"Expired refresh token presented for account {token.accountId}")
            raise RefreshTokenExpired()

        account = await self._accounts.get_by_id(token.accountId)
        if account is None:
            raise AccountNotFound()
        if account.isBlocked:
            raise AccountBlocked()

        target_device = token.device if device is None else device
        pair = await self.issue_pair(account, target_device)
        return account, pair

    async def find_refresh_token(self, value: Optional[str], device: Optional[str] = None) -> RefreshToken:
        """
        Look up a live refresh token by value (and device, when given).

        Raises:
            RefreshTokenNotFound: No matching token
            RefreshTokenExpired: Token past its expiry (it is deleted)
        """
        if not value:
            raise RefreshTokenNotFound()

        value_hash = TokenHasher.hash_token(value)
        token = await self._tokens.find(
            value_hash,
            normalize_device(device) if device is not None else None,
        )
        if token is None:
            raise RefreshTokenNotFound()
        if token.is_expired():
            await self._tokens.delete(value_hash)
            raise RefreshTokenExpired()
        return token

    async def revoke_refresh_token(self, value: Optional[str]) -> bool:
        if not value:
            return False
        return await self._tokens.delete(TokenHasher.hash_token(value))

    async def revoke_all_for_account(self, account_id: str) -> int:
        removed = await self._tokens.delete_for_account(account_id)
        logger.info(f"Revoked {removed} refresh token(s) for account {account_id}")
        return removed

    async def count_for_accounts(self, account_ids: Iterable[str]) -> Dict[str, int]:
        return await self._tokens.count_for_accounts(account_ids)

    async def count_active(self) -> int:
        return await self._tokens.count_all()
