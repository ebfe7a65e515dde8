"""
Authentication schemes.

Account logic is shared; how a signed-in caller is represented is not.
``BearerScheme`` hands out an access token plus a rotating refresh token,
``SessionScheme`` a server-side session id plus a CSRF token. The gateway
holds exactly one of them, chosen by ``AUTH_SCHEME``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

from common.utils.exceptions import UnauthorizedException
from identity.errors import AccountNotFound, RefreshTokenNotFound
from identity.models import (
    AccessClaims,
    Account,
    AccountView,
    AccountWithCredentials,
    Credentials,
    PresentedCredential,
    SessionCredentials,
    TokenPair,
    normalize_device,
)
from identity.services.session_manager import SessionManager
from identity.services.token_issuer import TokenIssuer
from identity.stores.base import IdentityStore

logger = logging.getLogger(__name__)


class AuthScheme(ABC):
    """Strategy for issuing and checking credentials."""

    name: str = ""

    @abstractmethod
    async def issue(self, account: Account, device: Optional[str]) -> Credentials:
        """Credentials for a freshly authenticated account."""

    @abstractmethod
    async def me(self, credential: PresentedCredential) -> Union[AccountView, AccountWithCredentials]:
        """The account behind the presented credential."""

    @abstractmethod
    async def refresh(self, credential: PresentedCredential) -> Credentials:
        """Exchange or extend the presented credential."""

    @abstractmethod
    async def logout(self, credential: PresentedCredential) -> None:
        """Destroy the presented credential."""

    @abstractmethod
    async def authorize(self, credential: PresentedCredential) -> None:
        """Raise unless the presented credential authorizes a request."""

    @abstractmethod
    async def identify(self, credential: PresentedCredential) -> AccessClaims:
        """Who is making a state-changing request."""


class BearerScheme(AuthScheme):
    """
    Stateless access tokens with rotating, device-scoped refresh tokens.

    ``credential.token`` is the refresh token for ``me``, ``refresh`` and
    ``logout``, and the access token for ``authorize``.
    A refresh without a device keeps the new pair on the consumed token's
    device.
    """

    name = "jwt"

    def __init__(self, token_issuer: TokenIssuer, identity_store: IdentityStore):
        self._issuer = token_issuer
        self._accounts = identity_store

    async def issue(self, account: Account, device: Optional[str]) -> TokenPair:
        return await self._issuer.issue_pair(account, device)

    async def me(self, credential: PresentedCredential) -> AccountView:
        try:
            token = await self._issuer.find_refresh_token(
                credential.token, normalize_device(credential.device)
            )
        except RefreshTokenNotFound:
            raise UnauthorizedException("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

        account = await self._accounts.get_by_id(token.accountId)
        if account is None:
            raise AccountNotFound()
        return account.to_view()

    async def refresh(self, credential: PresentedCredential) -> TokenPair:
        try:
            account, pair = await self._issuer.consume_refresh_token(credential.token, credential.device)
        except RefreshTokenNotFound:
            raise UnauthorizedException("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

        logger.info(f"Refreshed tokens for account {account.id}")
        return pair

    async def logout(self, credential: PresentedCredential) -> None:
        if not await self._issuer.revoke_refresh_token(credential.token):
            raise UnauthorizedException("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

    async def authorize(self, credential: PresentedCredential) -> None:
        self._issuer.decode_access_token(credential.token)

    async def identify(self, credential: PresentedCredential) -> AccessClaims:
        return self._issuer.decode_access_token(credential.token)


class SessionScheme(AuthScheme):
    """
    Server-side sessions with a CSRF token.

    ``me`` and ``refresh`` need only ``credential.sessionId``; ``me`` hands
    back the session credentials so a cookie-only client can read its CSRF
    token. ``logout`` and ``authorize`` also need ``credential.csrfToken``.
    """

    name = "session"

    def __init__(self, session_manager: SessionManager, rotate_on_me: bool = False):
        self._sessions = session_manager
        self._rotate_on_me = rotate_on_me

    async def issue(self, account: Account, device: Optional[str]) -> SessionCredentials:
        return await self._sessions.create_session(account)

    async def me(self, credential: PresentedCredential) -> AccountWithCredentials:
        if self._rotate_on_me:
            account, credentials = await self._sessions.rotate_session(credential.sessionId)
        else:
            account, credentials = await self._sessions.current_session(credential.sessionId)
        return AccountWithCredentials(account=account.to_view(), credentials=credentials)

    async def refresh(self, credential: PresentedCredential) -> SessionCredentials:
        return await self._sessions.refresh_session(credential.sessionId)

    async def logout(self, credential: PresentedCredential) -> None:
        await self._sessions.destroy_session(credential.sessionId, credential.csrfToken)

    async def authorize(self, credential: PresentedCredential) -> None:
        await self._sessions.authorize(credential.sessionId, credential.csrfToken)

    async def identify(self, credential: PresentedCredential) -> AccessClaims:
        account = await self._sessions.authorized_account(credential.sessionId, credential.csrfToken)
        return AccessClaims(id=account.id, email=account.email, roles=account.roles)
