"""
Public operation contract of the identity service.

Transport adapters (HTTP routes, queue consumers) call ``AuthGateway`` and
map the returned ``OperationResult`` onto their own wire format. No method
here raises: every outcome, including unexpected store failures, comes back
as a tagged result.
"""

import logging
from typing import Optional, Union

from identity.models import (
    PresentedCredential,
    Provider,
    ProviderProfile,
    normalize_device,
)
from identity.results import OperationResult, ResultStatus, run_operation
from identity.schemes import AuthScheme
from identity.services.account_lifecycle import AccountLifecycle
from identity.services.token_issuer import TokenIssuer

logger = logging.getLogger(__name__)


class AuthGateway:
    """Wraps the account lifecycle and the active auth scheme."""

    def __init__(
        self,
        lifecycle: AccountLifecycle,
        scheme: AuthScheme,
        token_issuer: TokenIssuer,
    ):
        self._lifecycle = lifecycle
        self._scheme = scheme
        self._issuer = token_issuer

    @property
    def scheme_name(self) -> str:
        return self._scheme.name

    # =========================================================================
    # Credentials
    # =========================================================================

    async def signup(
        self,
        email: str,
        password: str,
        name: str,
        surname: str,
        device: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> OperationResult:
        return await run_operation(
            "signup",
            lambda: self._lifecycle.signup(
                email, password, name, surname, normalize_device(device), phone_number
            ),
            ResultStatus.CREATED,
        )

    async def signin(self, email: str, password: str, device: Optional[str] = None) -> OperationResult:
        return await run_operation(
            "signin",
            lambda: self._lifecycle.signin(email, password, normalize_device(device)),
        )

    async def refresh(self, credential: PresentedCredential) -> OperationResult:
        return await run_operation("refresh", lambda: self._scheme.refresh(credential))

    async def logout(self, credential: PresentedCredential) -> OperationResult:
        return await run_operation("logout", lambda: self._scheme.logout(credential))

    async def me(self, credential: PresentedCredential) -> OperationResult:
        return await run_operation("me", lambda: self._scheme.me(credential))

    async def authorize(self, credential: PresentedCredential) -> OperationResult:
        return await run_operation("authorize", lambda: self._scheme.authorize(credential))

    async def auth_by_provider(
        self,
        profile: ProviderProfile,
        provider: Provider,
        device: Optional[str] = None,
    ) -> OperationResult:
        return await run_operation(
            "auth_by_provider",
            lambda: self._lifecycle.auth_by_provider(profile, provider, normalize_device(device)),
        )

    async def jwt_auth(self, access_token: str) -> OperationResult:
        async def operation():
            claims = self._issuer.decode_access_token(access_token)
            return await self._lifecycle.jwt_auth(claims)

        return await run_operation("jwt_auth", operation)

    async def user_roles(self, access_token: str) -> OperationResult:
        async def operation():
            claims = self._issuer.decode_access_token(access_token)
            return await self._lifecycle.user_roles(claims)

        return await run_operation("user_roles", operation)

    async def delete_user(
        self,
        account_id: str,
        requester: Union[str, PresentedCredential, None],
    ) -> OperationResult:
        """``requester`` is an access token, or the caller's full credential."""
        if not isinstance(requester, PresentedCredential):
            requester = PresentedCredential(token=requester)
        return await run_operation(
            "delete_user",
            lambda: self._lifecycle.delete_user(account_id, requester),
        )

    # =========================================================================
    # Administration
    # =========================================================================

    async def admin_login(self, name: str, password: str, device: Optional[str] = None) -> OperationResult:
        return await run_operation(
            "admin_login",
            lambda: self._lifecycle.admin_login(name, password, normalize_device(device)),
        )

    async def block_user(self, account_id: str) -> OperationResult:
        return await run_operation("block_user", lambda: self._lifecycle.block_user(account_id))

    async def unblock_user(self, account_id: str) -> OperationResult:
        return await run_operation("unblock_user", lambda: self._lifecycle.unblock_user(account_id))

    async def update_admin(
        self,
        account_id: str,
        name: str,
        surname: str,
        email: str,
        phone_number: Optional[str] = None,
        device: Optional[str] = None,
    ) -> OperationResult:
        return await run_operation(
            "update_admin",
            lambda: self._lifecycle.update_admin(
                account_id, name, surname, email, phone_number, normalize_device(device)
            ),
        )

    async def create_user_by_admin(
        self,
        email: str,
        password: str,
        name: str,
        surname: str,
        phone_number: Optional[str] = None,
    ) -> OperationResult:
        return await run_operation(
            "create_user_by_admin",
            lambda: self._lifecycle.create_user_by_admin(email, password, name, surname, phone_number),
            ResultStatus.CREATED,
        )

    async def add_admin_role_to_user(self, account_id: str) -> OperationResult:
        return await run_operation(
            "add_admin_role_to_user",
            lambda: self._lifecycle.add_admin_role_to_user(account_id),
        )

    async def get_all_users(self, page: int = 1, limit: int = 10) -> OperationResult:
        return await run_operation("get_all_users", lambda: self._lifecycle.get_all_users(page, limit))

    async def get_stats(self) -> OperationResult:
        return await run_operation("get_stats", self._lifecycle.get_stats)

    async def search_users(self, query: str) -> OperationResult:
        return await run_operation("search_users", lambda: self._lifecycle.search_users(query))

    async def reindex(self) -> OperationResult:
        return await run_operation("reindex", self._lifecycle.reindex)
