"""
Abstract persistence interfaces.

Defines the contract every storage backend must implement for accounts,
refresh tokens and cookie sessions. Services depend only on these classes,
so the Mongo and in-memory backends are interchangeable.

The one-refresh-token-per-device rule is enforced here, not in the services:
``TokenStore.upsert`` must be an atomic find-and-update-or-insert on the
(accountId, device) pair.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable

from bson import ObjectId

from identity.models import Account, RefreshToken, Session, Role


def new_account_id() -> str:
    """Generate an opaque account id (an ObjectId hex string)."""
    return str(ObjectId())


class IdentityStore(ABC):
    """Accounts, unique by email."""

    async def ensure_indexes(self) -> None:
        """Create backend indexes. No-op by default."""

    @abstractmethod
    async def create(self, account: Account) -> Account:
        """
        Insert a new account.

        Raises:
            EmailTaken: If another account already has this email
        """

    @abstractmethod
    async def get_by_id(self, account_id: str) -> Optional[Account]:
        """Load an account, or None (also for ids the backend cannot parse)."""

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Account]:
        """Load an account by exact email."""

    @abstractmethod
    async def find_admin_by_name(self, name: str) -> Optional[Account]:
        """Load the first ADMIN account with this name."""

    @abstractmethod
    async def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        """True if an account other than ``exclude_id`` uses ``email``."""

    @abstractmethod
    async def update(self, account_id: str, fields: Dict[str, Any]) -> Optional[Account]:
        """
        Atomically set ``fields`` on one account and return the result.

        Returns None if the account does not exist.

        Raises:
            EmailTaken: If the update would duplicate an email
        """

    @abstractmethod
    async def add_role(self, account_id: str, role: Role) -> Optional[Account]:
        """Atomically add ``role`` to the role set (idempotent)."""

    @abstractmethod
    async def delete(self, account_id: str) -> bool:
        """Delete an account. Returns False if it did not exist."""

    @abstractmethod
    async def list_page(self, skip: int, limit: int) -> List[Account]:
        """Accounts ordered by creation time, oldest first."""

    @abstractmethod
    async def list_all(self) -> List[Account]:
        """Every account, oldest first."""

    @abstractmethod
    async def get_many(self, account_ids: Iterable[str]) -> List[Account]:
        """Accounts for the given ids; unknown ids are skipped."""

    @abstractmethod
    async def count(
        self,
        blocked: Optional[bool] = None,
        role: Optional[Role] = None,
        activated: Optional[bool] = None,
    ) -> int:
        """Count accounts matching every given filter."""


class TokenStore(ABC):
    """Refresh tokens keyed by (accountId, device); values stored as hashes."""

    async def ensure_indexes(self) -> None:
        """Create backend indexes. No-op by default."""

    @abstractmethod
    async def upsert(
        self,
        account_id: str,
        device: str,
        value_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        """Atomically replace (or create) the token for (account, device)."""

    @abstractmethod
    async def take(self, value_hash: str) -> Optional[RefreshToken]:
        """Atomically find and delete a token by value. None if absent."""

    @abstractmethod
    async def find(self, value_hash: str, device: Optional[str] = None) -> Optional[RefreshToken]:
        """Find a token by value, optionally also requiring the device."""

    @abstractmethod
    async def delete(self, value_hash: str) -> bool:
        """Delete a token by value. Returns False if it did not exist."""

    @abstractmethod
    async def delete_for_account(self, account_id: str) -> int:
        """Delete every token of an account. Returns the number removed."""

    @abstractmethod
    async def count_for_accounts(self, account_ids: Iterable[str]) -> Dict[str, int]:
        """Token counts per account id (accounts with none map to 0)."""

    @abstractmethod
    async def count_all(self) -> int:
        """Total number of stored tokens."""

    async def count_for_account(self, account_id: str) -> int:
        counts = await self.count_for_accounts([account_id])
        return counts.get(account_id, 0)


class SessionStore(ABC):
    """Cookie sessions keyed by the hash of the session id."""

    async def ensure_indexes(self) -> None:
        """Create backend indexes. No-op by default."""

    @abstractmethod
    async def create(self, session: Session) -> Session:
        """Insert a new session."""

    @abstractmethod
    async def find(self, session_id_hash: str) -> Optional[Session]:
        """Load a session, expired or not."""

    @abstractmethod
    async def extend(self, session_id_hash: str, expires_at: datetime) -> bool:
        """Set a new expiry. Returns False if the session is gone."""

    @abstractmethod
    async def delete(self, session_id_hash: str) -> bool:
        """Delete a session. Returns False if it did not exist."""

    @abstractmethod
    async def delete_for_account(self, account_id: str) -> int:
        """Delete every session of an account. Returns the number removed."""

    @abstractmethod
    async def count_all(self) -> int:
        """Total number of stored sessions."""
