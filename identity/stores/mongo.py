"""
MongoDB-backed stores (Motor).

Collections:
    users     unique index on email
    tokens    unique index on (accountId, device) and on valueHash
    sessions  unique index on sessionIdHash
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Iterable

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from identity.errors import EmailTaken
from identity.models import Account, RefreshToken, Session, Role, utcnow
from identity.stores.base import IdentityStore, TokenStore, SessionStore

logger = logging.getLogger(__name__)


def _oid(account_id: str) -> Optional[ObjectId]:
    if not isinstance(account_id, str) or not ObjectId.is_valid(account_id):
        return None
    return ObjectId(account_id)


def _encode(value: Any) -> Any:
    """Turn enums (and lists of them) into their stored string values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [_encode(item) for item in value]
    return value


def _account_to_doc(account: Account) -> dict:
    doc = {key: _encode(value) for key, value in account.model_dump(exclude={"id"}).items()}
    doc["_id"] = ObjectId(account.id)
    return doc


def _doc_to_account(doc: Optional[dict]) -> Optional[Account]:
    if not doc:
        return None
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return Account.model_validate(data)


def _doc_to_token(doc: Optional[dict]) -> Optional[RefreshToken]:
    if not doc:
        return None
    return RefreshToken.model_validate(doc)


def _doc_to_session(doc: Optional[dict]) -> Optional[Session]:
    if not doc:
        return None
    return Session.model_validate(doc)


class MongoIdentityStore(IdentityStore):
    """Accounts in the ``users`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._users_collection = db["users"]

    async def ensure_indexes(self) -> None:
        await self._users_collection.create_index("email", unique=True)
        await self._users_collection.create_index([("createdAt", ASCENDING)])
        logger.debug("Indexes ensured for users collection")

    async def create(self, account: Account) -> Account:
        try:
            await self._users_collection.insert_one(_account_to_doc(account))
        except DuplicateKeyError:
            raise EmailTaken()
        return account

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        oid = _oid(account_id)
        if oid is None:
            return None
        return _doc_to_account(await self._users_collection.find_one({"_id": oid}))

    async def get_by_email(self, email: str) -> Optional[Account]:
        return _doc_to_account(await self._users_collection.find_one({"email": email}))

    async def find_admin_by_name(self, name: str) -> Optional[Account]:
        doc = await self._users_collection.find_one(
            {"name": name, "roles": Role.ADMIN.value}
        )
        return _doc_to_account(doc)

    async def email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        query: Dict[str, Any] = {"email": email}
        oid = _oid(exclude_id) if exclude_id else None
        if oid is not None:
            query["_id"] = {"$ne": oid}
        return await self._users_collection.find_one(query, {"_id": 1}) is not None

    async def update(self, account_id: str, fields: Dict[str, Any]) -> Optional[Account]:
        oid = _oid(account_id)
        if oid is None:
            return None

        changes = {key: _encode(value) for key, value in fields.items() if key not in ("id", "_id")}
        changes["updatedAt"] = utcnow()
        try:
            doc = await self._users_collection.find_one_and_update(
                {"_id": oid},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            raise EmailTaken()
        return _doc_to_account(doc)

    async def add_role(self, account_id: str, role: Role) -> Optional[Account]:
        oid = _oid(account_id)
        if oid is None:
            return None
        doc = await self._users_collection.find_one_and_update(
            {"_id": oid},
            {"$addToSet": {"roles": role.value}, "$set": {"updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        return _doc_to_account(doc)

    async def delete(self, account_id: str) -> bool:
        oid = _oid(account_id)
        if oid is None:
            return False
        result = await self._users_collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def list_page(self, skip: int, limit: int) -> List[Account]:
        cursor = self._users_collection.find({}).sort("createdAt", ASCENDING).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [_doc_to_account(doc) for doc in docs]

    async def list_all(self) -> List[Account]:
        cursor = self._users_collection.find({}).sort("createdAt", ASCENDING)
        docs = await cursor.to_list(length=None)
        return [_doc_to_account(doc) for doc in docs]

    async def get_many(self, account_ids: Iterable[str]) -> List[Account]:
        oids = [oid for oid in (_oid(account_id) for account_id in account_ids) if oid is not None]
        if not oids:
            return []
        cursor = self._users_collection.find({"_id": {"$in": oids}}).sort("createdAt", ASCENDING)
        docs = await cursor.to_list(length=None)
        return [_doc_to_account(doc) for doc in docs]

    async def count(
        self,
        blocked: Optional[bool] = None,
        role: Optional[Role] = None,
        activated: Optional[bool] = None,
    ) -> int:
        query: Dict[str, Any] = {}
        if blocked is not None:
            query["isBlocked"] = blocked
        if role is not None:
            query["roles"] = role.value
        if activated is not None:
            query["activated"] = activated
        return await self._users_collection.count_documents(query)


class MongoTokenStore(TokenStore):
    """Refresh tokens in the ``tokens`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._tokens_collection = db["tokens"]

    async def ensure_indexes(self) -> None:
        await self._tokens_collection.create_index(
            [("accountId", ASCENDING), ("device", ASCENDING)],
            unique=True,
        )
        await self._tokens_collection.create_index("valueHash", unique=True)
        logger.debug("Indexes ensured for tokens collection")

    async def upsert(
        self,
        account_id: str,
        device: str,
        value_hash: str,
        expires_at: datetime,
    ) -> RefreshToken:
        now = utcnow()
        # Two concurrent upserts for a new (account, device) pair can both miss
        # and both insert; the unique index rejects one, and the retry then
        # matches the winner's document and overwrites it.
        for attempt in range(2):
            try:
                doc = await self._tokens_collection.find_one_and_update(
                    {"accountId": account_id, "device": device},
                    {
                        "$set": {"valueHash": value_hash, "expiresAt": expires_at},
                        "$setOnInsert": {"createdAt": now},
                    },
                    upsert=True,
                    return_document=ReturnDocument.AFTER,
                )
                return _doc_to_token(doc)
            except DuplicateKeyError:
                if attempt:
                    raise
                logger.debug(f"Refresh token upsert raced for account {account_id}, retrying")

    async def take(self, value_hash: str) -> Optional[RefreshToken]:
        doc = await self._tokens_collection.find_one_and_delete({"valueHash": value_hash})
        return _doc_to_token(doc)

    async def find(self, value_hash: str, device: Optional[str] = None) -> Optional[RefreshToken]:
        query = {"valueHash": value_hash}
        if device is not None:
            query["device"] = device
        return _doc_to_token(await self._tokens_collection.find_one(query))

    async def delete(self, value_hash: str) -> bool:
        result = await self._tokens_collection.delete_one({"valueHash": value_hash})
        return result.deleted_count > 0

    async def delete_for_account(self, account_id: str) -> int:
        result = await self._tokens_collection.delete_many({"accountId": account_id})
        return result.deleted_count

    async def count_for_accounts(self, account_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(account_ids)
        counts = {account_id: 0 for account_id in ids}
        if not ids:
            return counts

        cursor = self._tokens_collection.aggregate([
            {"$match": {"accountId": {"$in": ids}}},
            {"$group": {"_id": "$accountId", "count": {"$sum": 1}}},
        ])
        for row in await cursor.to_list(length=None):
            counts[row["_id"]] = row["count"]
        return counts

    async def count_all(self) -> int:
        return await self._tokens_collection.count_documents({})


class MongoSessionStore(SessionStore):
    """Cookie sessions in the ``sessions`` collection."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db
        self._sessions_collection = db["sessions"]

    async def ensure_indexes(self) -> None:
        await self._sessions_collection.create_index("sessionIdHash", unique=True)
        await self._sessions_collection.create_index("accountId")
        logger.debug("Indexes ensured for sessions collection")

    async def create(self, session: Session) -> Session:
        await self._sessions_collection.insert_one(session.model_dump())
        return session

    async def find(self, session_id_hash: str) -> Optional[Session]:
        doc = await self._sessions_collection.find_one({"sessionIdHash": session_id_hash})
        return _doc_to_session(doc)

    async def extend(self, session_id_hash: str, expires_at: datetime) -> bool:
        result = await self._sessions_collection.update_one(
            {"sessionIdHash": session_id_hash},
            {"$set": {"expiresAt": expires_at}},
        )
        return result.matched_count > 0

    async def delete(self, session_id_hash: str) -> bool:
        result = await self._sessions_collection.delete_one({"sessionIdHash": session_id_hash})
        return result.deleted_count > 0

    async def delete_for_account(self, account_id: str) -> int:
        result = await self._sessions_collection.delete_many({"accountId": account_id})
        return result.deleted_count

    async def count_all(self) -> int:
        return await self._sessions_collection.count_documents({})
