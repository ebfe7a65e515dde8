"""
Account lifecycle: signup, signin, federated login and administration.

Methods raise the ``APIException`` family; ``AuthGateway`` turns those into
tagged results. Credentials come from whichever ``AuthScheme`` is active,
but revocation on block/delete always clears both refresh tokens and
sessions so switching schemes never leaves stale credentials behind.
"""

import logging
from typing import Optional, List, Dict, TYPE_CHECKING

from common.utils import validate_password
from common.utils.exceptions import ForbiddenException
from identity.config import Settings, settings as default_settings
from identity.errors import (
    AccountBlocked,
    AccountNotFound,
    AdminProtected,
    EmailTaken,
    InvalidCredentials,
    InvalidInput,
    ProviderMismatch,
    RoleAlreadyAssigned,
)
from identity.models import (
    Account,
    AccessClaims,
    AccountView,
    AccountWithCredentials,
    PresentedCredential,
    Provider,
    ProviderProfile,
    Role,
    UsersPage,
    UsersStats,
)
from identity.services.email_service import EmailService
from identity.services.password_hasher import PasswordHasher
from identity.services.search_index import SearchIndex
from identity.services.session_manager import SessionManager
from identity.services.task_dispatcher import TaskDispatcher
from identity.services.token_issuer import TokenIssuer
from identity.stores.base import IdentityStore, new_account_id

if TYPE_CHECKING:
    from identity.schemes import AuthScheme

logger = logging.getLogger(__name__)


class AccountLifecycle:
    """Account operations shared by both auth schemes."""

    def __init__(
        self,
        identity_store: IdentityStore,
        password_hasher: PasswordHasher,
        scheme: "AuthScheme",
        token_issuer: TokenIssuer,
        session_manager: SessionManager,
        search_index: SearchIndex,
        email_service: EmailService,
        dispatcher: TaskDispatcher,
        config: Optional[Settings] = None,
    ):
        self._accounts = identity_store
        self._hasher = password_hasher
        self._scheme = scheme
        self._issuer = token_issuer
        self._sessions = session_manager
        self._search = search_index
        self._email = email_service
        self._dispatcher = dispatcher
        self._config = config or default_settings

    # =========================================================================
    # Input normalisation
    # =========================================================================

    def _clean(self, value: Optional[str]) -> str:
        value = value or ""
        return value.strip() if self._config.TRIM_IDENTIFIERS else value

    def _clean_email(self, email: Optional[str]) -> str:
        email = self._clean(email)
        return email.lower() if self._config.LOWERCASE_EMAIL else email

    def _check_password(self, password: Optional[str]) -> None:
        is_valid, errors = validate_password(
            password,
            min_length=self._config.PASSWORD_MIN_LENGTH,
            max_length=self._config.PASSWORD_MAX_LENGTH,
        )
        if not is_valid:
            raise InvalidInput(errors[0], details=errors)

    @staticmethod
    def _require(**fields: str) -> None:
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise InvalidInput(f"Missing required field(s): {', '.join(missing)}", details=missing)

    async def _get_or_404(self, account_id: str) -> Account:
        account = await self._accounts.get_by_id(account_id)
        if account is None:
            raise AccountNotFound()
        return account

    async def _create_local(
        self,
        email: str,
        password: str,
        name: str,
        surname: str,
        phone_number: Optional[str],
    ) -> Account:
        email = self._clean_email(email)
        name = self._clean(name)
        surname = self._clean(surname)
        self._require(email=email, name=name, surname=surname)
        self._check_password(password)

        if await self._accounts.email_taken(email):
            raise EmailTaken()

        account = Account(
            id=new_account_id(),
            name=name,
            surname=surname,
            email=email,
            passwordHash=self._hasher.hash(password),
            phoneNumber=self._clean(phone_number) or None,
            provider=Provider.LOCAL,
        )
        # The store rejects a duplicate that slipped past the check above
        await self._accounts.create(account)
        self._dispatcher.submit(self._search.upsert(account), name="search-upsert")
        logger.info(f"Created account {account.id}")
        return account

    async def _with_credentials(self, account: Account, device: Optional[str]) -> AccountWithCredentials:
        credentials = await self._scheme.issue(account, device)
        return AccountWithCredentials(account=account.to_view(), credentials=credentials)

    async def _revoke_credentials(self, account_id: str) -> None:
        await self._issuer.revoke_all_for_account(account_id)
        await self._sessions.destroy_all_for_account(account_id)

    # =========================================================================
    # Self-service
    # =========================================================================

    async def signup(
        self,
        email: str,
        password: str,
        name: str,
        surname: str,
        device: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> AccountWithCredentials:
        account = await self._create_local(email, password, name, surname, phone_number)
        self._dispatcher.submit(
            self._email.send_welcome_email(account.email, account.name),
            name="welcome-email",
        )
        return await self._with_credentials(account, device)

    async def signin(self, email: str, password: str, device: Optional[str] = None) -> AccountWithCredentials:
        account = await self._accounts.get_by_email(self._clean_email(email))
        if account is None:
            raise AccountNotFound()
        if account.provider != Provider.LOCAL:
            raise ProviderMismatch()
        if not account.has_usable_password or not self._hasher.verify(account.passwordHash, password or ""):
            logger.warning(f"Failed signin for account {account.id}")
            raise InvalidCredentials()
        if account.isBlocked:
            raise AccountBlocked()

        logger.info(f"Account {account.id} signed in")
        return await self._with_credentials(account, device)

    async def auth_by_provider(
        self,
        profile: ProviderProfile,
        provider: Provider,
        device: Optional[str] = None,
    ) -> AccountWithCredentials:
        """
        Sign in with an identity asserted by a federated provider, creating
        the account on first use. Accounts are never linked across providers.
        """
        try:
            provider = Provider(provider)
        except ValueError:
            raise InvalidInput("Unknown provider", details=[str(provider)])
        if provider == Provider.LOCAL:
            raise InvalidInput("Provider login requires an external provider")

        email = self._clean_email(profile.email)
        name = self._clean(profile.name)
        surname = self._clean(profile.surname)

        account = await self._accounts.get_by_email(email) if email else None
        if account is not None:
            if account.isBlocked:
                raise AccountBlocked()
            if account.provider != provider:
                raise ProviderMismatch()
            logger.info(f"Account {account.id} signed in via {provider.value}")
            return await self._with_credentials(account, device)

        self._require(email=email, name=name)
        account = Account(
            id=new_account_id(),
            name=name,
            surname=surname,
            email=email,
            provider=provider,
        )
        await self._accounts.create(account)
        self._dispatcher.submit(self._search.upsert(account), name="search-upsert")
        logger.info(f"Created {provider.value} account {account.id}")
        return await self._with_credentials(account, device)

    async def jwt_auth(self, claims: AccessClaims) -> AccountView:
        """
        Re-check an access token's claims against the stored account: it must
        still exist with the same email and roles, and must not be blocked.
        """
        account = await self._accounts.get_by_id(claims.id)
        if (
            account is None
            or account.email != claims.email
            or set(account.roles) != set(claims.roles)
        ):
            raise AccountNotFound()
        if account.isBlocked:
            raise AccountBlocked()
        return account.to_view()

    async def user_roles(self, claims: AccessClaims) -> Dict[str, List[str]]:
        account = await self._get_or_404(claims.id)
        return {"roles": [role.value for role in account.roles]}

    async def delete_user(self, account_id: str, requester: PresentedCredential) -> AccountView:
        """
        Delete an account on behalf of the caller presenting ``requester``
        (an access token, or a session id plus CSRF token in session mode).
        The caller must own the account or be an ADMIN. An unknown target is
        reported before the caller is checked. Returns the deleted account.
        """
        account = await self._get_or_404(account_id)
        caller = await self._scheme.identify(requester)

        if caller.id != account.id and Role.ADMIN not in caller.roles:
            raise ForbiddenException("Not allowed to delete this account", code="DELETE_FORBIDDEN")
        if account.is_admin and self._config.ADMIN_BLOCK_EXEMPT:
            raise AdminProtected()

        await self._revoke_credentials(account.id)
        await self._accounts.delete(account.id)
        self._dispatcher.submit(self._search.delete(account), name="search-delete")
        logger.info(f"Deleted account {account.id} (requested by {caller.id})")
        return account.to_view()

    # =========================================================================
    # Administration
    # =========================================================================

    async def admin_login(self, name: str, password: str, device: Optional[str] = None) -> AccountWithCredentials:
        account = await self._accounts.find_admin_by_name(self._clean(name))
        if account is None:
            raise AccountNotFound()
        if not account.has_usable_password or not self._hasher.verify(account.passwordHash, password or ""):
            logger.warning(f"Failed admin login for account {account.id}")
            raise InvalidCredentials()
        if account.isBlocked:
            raise AccountBlocked()

        logger.info(f"Admin {account.id} logged in")
        return await self._with_credentials(account, device)

    async def block_user(self, account_id: str) -> AccountView:
        account = await self._get_or_404(account_id)
        if account.is_admin and self._config.ADMIN_BLOCK_EXEMPT:
            raise AdminProtected()

        updated = await self._accounts.update(account.id, {"isBlocked": True})
        if updated is None:
            raise AccountNotFound()
        await self._revoke_credentials(account.id)
        self._dispatcher.submit(self._search.upsert(updated), name="search-upsert")

        logger.info(f"Blocked account {account.id}")
        return updated.to_view()

    async def unblock_user(self, account_id: str) -> AccountView:
        await self._get_or_404(account_id)
        updated = await self._accounts.update(account_id, {"isBlocked": False})
        if updated is None:
            raise AccountNotFound()
        self._dispatcher.submit(self._search.upsert(updated), name="search-upsert")

        logger.info(f"Unblocked account {account_id}")
        return updated.to_view()

    async def update_admin(
        self,
        account_id: str,
        name: str,
        surname: str,
        email: str,
        phone_number: Optional[str] = None,
        device: Optional[str] = None,
    ) -> AccountWithCredentials:
        account = await self._get_or_404(account_id)
        if not account.is_admin:
            raise ForbiddenException("Account is not an admin", code="NOT_ADMIN")

        email = self._clean_email(email)
        name = self._clean(name)
        surname = self._clean(surname)
        self._require(email=email, name=name, surname=surname)
        if await self._accounts.email_taken(email, exclude_id=account.id):
            raise EmailTaken()

        updated = await self._accounts.update(
            account.id,
            {
                "name": name,
                "surname": surname,
                "email": email,
                "phoneNumber": self._clean(phone_number) or None,
            },
        )
        if updated is None:
            raise AccountNotFound()
        self._dispatcher.submit(self._search.upsert(updated), name="search-upsert")

        logger.info(f"Updated admin account {account.id}")
        return await self._with_credentials(updated, device)

    async def create_user_by_admin(
        self,
        email: str,
        password: str,
        name: str,
        surname: str,
        phone_number: Optional[str] = None,
    ) -> AccountView:
        account = await self._create_local(email, password, name, surname, phone_number)
        return account.to_view()

    async def add_admin_role_to_user(self, account_id: str) -> AccountView:
        account = await self._get_or_404(account_id)
        if account.is_admin:
            raise RoleAlreadyAssigned()
        # Exempt admins cannot be blocked, so a blocked account stays non-admin
        if account.isBlocked and self._config.ADMIN_BLOCK_EXEMPT:
            raise AdminProtected("Blocked accounts cannot be made admin")

        updated = await self._accounts.add_role(account.id, Role.ADMIN)
        if updated is None:
            raise AccountNotFound()
        self._dispatcher.submit(self._search.upsert(updated), name="search-upsert")

        logger.info(f"Granted ADMIN to account {account.id}")
        return updated.to_view()

    async def _views_with_counts(self, accounts: List[Account]) -> List[AccountView]:
        counts = await self._issuer.count_for_accounts([a.id for a in accounts])
        return [a.to_view(tokens_count=counts.get(a.id, 0)) for a in accounts]

    async def get_all_users(self, page: int = 1, limit: int = 10) -> UsersPage:
        if not isinstance(page, int) or not isinstance(limit, int) or page < 1 or limit < 1:
            raise InvalidInput("page and limit must be positive integers")

        total = await self._accounts.count()
        accounts = await self._accounts.list_page((page - 1) * limit, limit)
        return UsersPage(
            total=total,
            page=page,
            limit=limit,
            users=await self._views_with_counts(accounts),
        )

    async def get_stats(self) -> UsersStats:
        return UsersStats(
            total=await self._accounts.count(),
            blocked=await self._accounts.count(blocked=True),
            admins=await self._accounts.count(role=Role.ADMIN),
            activated=await self._accounts.count(activated=True),
            activeSessions=await self._issuer.count_active() + await self._sessions.count_active(),
        )

    async def search_users(self, query: str) -> List[AccountView]:
        query = (query or "").strip()
        if not query:
            return []

        ids = await self._search.search(query)
        if not ids:
            return []

        rank: Dict[str, int] = {account_id: i for i, account_id in enumerate(ids)}
        accounts = await self._accounts.get_many(ids)
        accounts.sort(key=lambda a: rank.get(a.id, len(rank)))
        return await self._views_with_counts(accounts)

    async def reindex(self) -> None:
        accounts = await self._accounts.list_all()
        if not accounts:
            raise AccountNotFound("No accounts to index")
        await self._search.bulk_upsert(accounts)
        logger.info(f"Reindex requested for {len(accounts)} account(s)")

