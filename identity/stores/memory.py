"""
In-memory stores.

Used by the test suite and for running the service without MongoDB. Every
method completes without awaiting, so each call is atomic with respect to
other coroutines on the same event loop, which gives ``upsert`` and ``take``
the same guarantees the Mongo backend gets from its atomic commands.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable

from bson import ObjectId

from identity.errors import EmailTaken
from identity.models import Account, RefreshToken, Session, Role, utcnow
from identity.stores.base import IdentityStore, TokenStore, SessionStore


class InMemoryIdentityStore(IdentityStore):

    def __init__(self):
        self._accounts: Dict[str, Account] = {}

    async def create(self, account: Account) -> Account:
        if not ObjectId.is_valid(account.id):
            raise ValueError(f"Invalid account id: {account.id!r}")
        if account.id in self._accounts or self._find_email(account.email):
            raise EmailTaken()
        self._accounts[account.id] = account.model_copy(deep=True)
        return account

    def _find_email(self, email: str, exclude_id: Optional[str] = None) -> Optional[Account]:
        for account in self._accounts.values():
            if account.email == email and account.id != exclude_id:
                return account
        return None

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def get_by_email(self, email: str) -> Optional[Account]:
        account = self._find_email(email)
        return account.model_copy(deep=True) if account else None

    async def find_admin_by_name(self, name: str) -> Optional[Account]:
        for account in self._ordered():
            if account.name == name and account.is_admin:
                return account.model_copy(deep=True)
        return None

    async def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        return self._find_email(email, exclude_id) is not None

    async def update(self, account_id: str, fields: Dict[str, Any]) -> Optional[Account]:
        current = self._accounts.get(account_id)
        if current is None:
            return None

        changes = {key: value for key, value in fields.items() if key != "id"}
        if "email" in changes and self._find_email(changes["email"], exclude_id=account_id):
            raise EmailTaken()

        changes["updatedAt"] = utcnow()
        # Re-validate so the model invariants still hold after the update
        updated = Account.model_validate({**current.model_dump(), **changes})
        self._accounts[account_id] = updated
        return updated.model_copy(deep=True)

    async def add_role(self, account_id: str, role: Role) -> Optional[Account]:
        current = self._accounts.get(account_id)
        if current is None:
            return None
        updated = current.with_role(role)
        self._accounts[account_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, account_id: str) -> bool:
        return self._accounts.pop(account_id, None) is not None

    def _ordered(self) -> List[Account]:
        return sorted(self._accounts.values(), key=lambda a: (a.createdAt, a.id))

    async def list_page(self, skip: int, limit: int) -> List[Account]:
        return [a.model_copy(deep=True) for a in self._ordered()[skip:skip + limit]]

    async def list_all(self) -> List[Account]:
        return [a.model_copy(deep=True) for a in self._ordered()]

    async def get_many(self, account_ids: Iterable[str]) -> List[Account]:
        wanted = set(account_ids)
        return [a.model_copy(deep=True) for a in self._ordered() if a.id in wanted]

    async def count(
        self,
        blocked: Optional[bool] = None,
        role: Optional[Role] = None,
        activated: Optional[bool] = None,
    ) -> int:
        total = 0
        for account in self._accounts.values():
            if blocked is not None and account.isBlocked != blocked:
                continue
            if role is not None and not account.has_role(role):
                continue
            if activated is not None and account.activated != activated:
                continue
            total += 1
        return total


class InMemoryTokenStore(TokenStore):

    def __init__(self):
        # (accountId, device) -> token
        self._tokens: Dict[tuple, RefreshToken] = {}

    async def upsert(
        self,
        account_id: str,
        device: str,
        value_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        key = (account_id, device)
        previous = self._tokens.get(key)
        token = RefreshToken(
            valueHash=value_hash,
            accountId=account_id,
            device=device,
            expiresAt=expires_at,
            createdAt=previous.createdAt if previous else utcnow(),
        )
        self._tokens[key] = token
        return token.model_copy()

    def _key_for(self, value_hash: str) -> Optional[tuple]:
        for key, token in self._tokens.items():
            if token.valueHash == value_hash:
                return key
        return None

    async def take(self, value_hash: str) -> Optional[RefreshToken]:
        key = self._key_for(value_hash)
        if key is None:
            return None
        return self._tokens.pop(key)

    async def find(self, value_hash: str, device: Optional[str] = None) -> Optional[RefreshToken]:
        key = self._key_for(value_hash)
        if key is None:
            return None
        token = self._tokens[key]
        if device is not None and token.device != device:
            return None
        return token.model_copy()

    async def delete(self, value_hash: str) -> bool:
        key = self._key_for(value_hash)
        if key is None:
            return False
        del self._tokens[key]
        return True

    async def delete_for_account(self, account_id: str) -> int:
        keys = [key for key in self._tokens if key[0] == account_id]
        for key in keys:
            del self._tokens[key]
        return len(keys)

    async def count_for_accounts(self, account_ids: Iterable[str]) -> Dict[str, int]:
        counts = {account_id: 0 for account_id in account_ids}
        for account_id, _device in self._tokens:
            if account_id in counts:
                counts[account_id] += 1
        return counts

    async def count_all(self) -> int:
        return len(self._tokens)


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    async def create(self, session: Session) -> Session:
        if session.sessionIdHash in self._sessions:
            raise ValueError("Session id collision")
        self._sessions[session.sessionIdHash] = session.model_copy()
        return session

    async def find(self, session_id_hash: str) -> Optional[Session]:
        session = self._sessions.get(session_id_hash)
        return session.model_copy() if session else None

    async def extend(self, session_id_hash: str, expires_at: datetime) -> bool:
        session = self._sessions.get(session_id_hash)
        if session is None:
            return False
        self._sessions[session_id_hash] = session.model_copy(update={"expiresAt": expires_at})
        return True

    async def delete(self, session_id_hash: str) -> bool:
        return self._sessions.pop(session_id_hash, None) is not None

    async def delete_for_account(self, account_id: str) -> int:
        hashes = [h for h, s in self._sessions.items() if s.accountId == account_id]
        for session_id_hash in hashes:
            del self._sessions[session_id_hash]
        return len(hashes)

    async def count_all(self) -> int:
        return len(self._sessions)
