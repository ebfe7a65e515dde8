"""Unit tests for the Motor-backed stores (mocked collections)."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from identity.errors import EmailTaken
from identity.models import Account, Provider, Role
from identity.stores import MongoIdentityStore, MongoTokenStore, MongoSessionStore


NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def account_doc(sample_user_id):
    return {
        "_id": ObjectId(sample_user_id),
        "name": "A",
        "surname": "B",
        "email": "a@x.com",
        "passwordHash": "$2b$04$hash",
        "phoneNumber": None,
        "activated": False,
        "isBlocked": False,
        "roles": ["USER"],
        "provider": "LOCAL",
        "createdAt": NOW,
        "updatedAt": NOW,
    }


@pytest.fixture
def token_doc(sample_user_id):
    return {
        "_id": ObjectId(),
        "valueHash": "hash-1",
        "accountId": sample_user_id,
        "device": "ua-1",
        "expiresAt": NOW + timedelta(days=30),
        "createdAt": NOW,
    }


# ─────────────────────────────────────────────────────────────────
# MongoIdentityStore
# ─────────────────────────────────────────────────────────────────


class TestMongoIdentityStore:
    @pytest.mark.asyncio
    async def test_create_writes_object_id_and_plain_strings(self, mock_db, mock_collection, sample_user_id):
        store = MongoIdentityStore(mock_db)
        account = Account(id=sample_user_id, name="A", surname="B", email="a@x.com", passwordHash="h")

        await store.create(account)

        doc = mock_collection.insert_one.call_args.args[0]
        assert doc["_id"] == ObjectId(sample_user_id)
        assert "id" not in doc
        assert doc["roles"] == ["USER"]
        assert doc["provider"] == "LOCAL"
        mock_db.__getitem__.assert_called_with("users")

    @pytest.mark.asyncio
    async def test_duplicate_email_becomes_conflict(self, mock_db, mock_collection, sample_user_id):
        mock_collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key error")
        store = MongoIdentityStore(mock_db)

        with pytest.raises(EmailTaken):
            await store.create(Account(id=sample_user_id, name="A", surname="B", email="a@x.com"))

    @pytest.mark.asyncio
    async def test_get_by_id_maps_document(self, mock_db, mock_collection, account_doc, sample_user_id):
        mock_collection.find_one.return_value = account_doc
        store = MongoIdentityStore(mock_db)

        account = await store.get_by_id(sample_user_id)

        mock_collection.find_one.assert_awaited_once_with({"_id": ObjectId(sample_user_id)})
        assert account.id == sample_user_id
        assert account.roles == [Role.USER]
        assert account.provider == Provider.LOCAL

    @pytest.mark.asyncio
    async def test_get_by_id_with_invalid_id(self, mock_db, mock_collection):
        store = MongoIdentityStore(mock_db)

        assert await store.get_by_id("not-an-object-id") is None
        mock_collection.find_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_find_admin_by_name(self, mock_db, mock_collection):
        mock_collection.find_one.return_value = None
        store = MongoIdentityStore(mock_db)

        assert await store.find_admin_by_name("Root") is None
        mock_collection.find_one.assert_awaited_once_with({"name": "Root", "roles": "ADMIN"})

    @pytest.mark.asyncio
    async def test_email_taken_excludes_account(self, mock_db, mock_collection, sample_user_id):
        mock_collection.find_one.return_value = {"_id": ObjectId()}
        store = MongoIdentityStore(mock_db)

        assert await store.email_taken("a@x.com", exclude_id=sample_user_id) is True
        query = mock_collection.find_one.call_args.args[0]
        assert query == {"email": "a@x.com", "_id": {"$ne": ObjectId(sample_user_id)}}

    @pytest.mark.asyncio
    async def test_update_sets_fields_atomically(self, mock_db, mock_collection, account_doc, sample_user_id):
        mock_collection.find_one_and_update.return_value = {**account_doc, "isBlocked": True}
        store = MongoIdentityStore(mock_db)

        account = await store.update(sample_user_id, {"isBlocked": True})

        args, kwargs = mock_collection.find_one_and_update.call_args
        assert args[0] == {"_id": ObjectId(sample_user_id)}
        assert args[1]["$set"]["isBlocked"] is True
        assert "updatedAt" in args[1]["$set"]
        assert kwargs["return_document"] == ReturnDocument.AFTER
        assert account.isBlocked is True

    @pytest.mark.asyncio
    async def test_update_duplicate_email(self, mock_db, mock_collection, sample_user_id):
        mock_collection.find_one_and_update.side_effect = DuplicateKeyError("E11000 duplicate key error")
        store = MongoIdentityStore(mock_db)

        with pytest.raises(EmailTaken):
            await store.update(sample_user_id, {"email": "b@x.com"})

    @pytest.mark.asyncio
    async def test_add_role_uses_add_to_set(self, mock_db, mock_collection, account_doc, sample_user_id):
        mock_collection.find_one_and_update.return_value = {**account_doc, "roles": ["USER", "ADMIN"]}
        store = MongoIdentityStore(mock_db)

        account = await store.add_role(sample_user_id, Role.ADMIN)

        update = mock_collection.find_one_and_update.call_args.args[1]
        assert update["$addToSet"] == {"roles": "ADMIN"}
        assert account.is_admin

    @pytest.mark.asyncio
    async def test_list_page_sorted_oldest_first(self, mock_db, mock_collection, account_doc):
        cursor = MagicMock()
        cursor.sort.return_value = cursor
        cursor.skip.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.to_list = AsyncMock(return_value=[account_doc])
        mock_collection.find.return_value = cursor
        store = MongoIdentityStore(mock_db)

        accounts = await store.list_page(skip=10, limit=5)

        cursor.sort.assert_called_once_with("createdAt", 1)
        cursor.skip.assert_called_once_with(10)
        cursor.limit.assert_called_once_with(5)
        assert [a.email for a in accounts] == ["a@x.com"]

    @pytest.mark.asyncio
    async def test_count_filters(self, mock_db, mock_collection):
        mock_collection.count_documents.return_value = 4
        store = MongoIdentityStore(mock_db)

        assert await store.count(blocked=True, role=Role.ADMIN) == 4
        mock_collection.count_documents.assert_awaited_once_with({"isBlocked": True, "roles": "ADMIN"})

    @pytest.mark.asyncio
    async def test_delete(self, mock_db, mock_collection, sample_user_id):
        mock_collection.delete_one.return_value = MagicMock(deleted_count=1)
        store = MongoIdentityStore(mock_db)

        assert await store.delete(sample_user_id) is True
        assert await store.delete("bad-id") is False
        mock_collection.delete_one.assert_awaited_once_with({"_id": ObjectId(sample_user_id)})

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, mock_db, mock_collection):
        store = MongoIdentityStore(mock_db)

        await store.ensure_indexes()

        mock_collection.create_index.assert_any_await("email", unique=True)


# ─────────────────────────────────────────────────────────────────
# MongoTokenStore
# ─────────────────────────────────────────────────────────────────


class TestMongoTokenStore:
    @pytest.mark.asyncio
    async def test_upsert_is_atomic_per_device(self, mock_db, mock_collection, token_doc, sample_user_id):
        mock_collection.find_one_and_update.return_value = token_doc
        store = MongoTokenStore(mock_db)
        expires = NOW + timedelta(days=30)

        token = await store.upsert(sample_user_id, "ua-1", "hash-1", expires)

        args, kwargs = mock_collection.find_one_and_update.call_args
        assert args[0] == {"accountId": sample_user_id, "device": "ua-1"}
        assert args[1]["$set"] == {"valueHash": "hash-1", "expiresAt": expires}
        assert "createdAt" in args[1]["$setOnInsert"]
        assert kwargs["upsert"] is True
        assert kwargs["return_document"] == ReturnDocument.AFTER
        assert token.valueHash == "hash-1"
        mock_db.__getitem__.assert_called_with("tokens")

    @pytest.mark.asyncio
    async def test_upsert_retries_once_on_race(self, mock_db, mock_collection, token_doc, sample_user_id):
        mock_collection.find_one_and_update.side_effect = [DuplicateKeyError("E11000"), token_doc]
        store = MongoTokenStore(mock_db)

        token = await store.upsert(sample_user_id, "ua-1", "hash-1", NOW)

        assert mock_collection.find_one_and_update.await_count == 2
        assert token.device == "ua-1"

    @pytest.mark.asyncio
    async def test_upsert_gives_up_after_second_race(self, mock_db, mock_collection, sample_user_id):
        mock_collection.find_one_and_update.side_effect = DuplicateKeyError("E11000")
        store = MongoTokenStore(mock_db)

        with pytest.raises(DuplicateKeyError):
            await store.upsert(sample_user_id, "ua-1", "hash-1", NOW)

    @pytest.mark.asyncio
    async def test_take_is_find_and_delete(self, mock_db, mock_collection, token_doc):
        mock_collection.find_one_and_delete.return_value = token_doc
        store = MongoTokenStore(mock_db)

        token = await store.take("hash-1")

        mock_collection.find_one_and_delete.assert_awaited_once_with({"valueHash": "hash-1"})
        assert token.accountId == token_doc["accountId"]

    @pytest.mark.asyncio
    async def test_find_with_device(self, mock_db, mock_collection):
        mock_collection.find_one.return_value = None
        store = MongoTokenStore(mock_db)

        assert await store.find("hash-1", "ua-1") is None
        mock_collection.find_one.assert_awaited_once_with({"valueHash": "hash-1", "device": "ua-1"})

    @pytest.mark.asyncio
    async def test_count_for_accounts(self, mock_db, mock_collection, sample_user_id):
        other = str(ObjectId())
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[{"_id": sample_user_id, "count": 2}])
        mock_collection.aggregate.return_value = cursor
        store = MongoTokenStore(mock_db)

        counts = await store.count_for_accounts([sample_user_id, other])

        assert counts == {sample_user_id: 2, other: 0}
        pipeline = mock_collection.aggregate.call_args.args[0]
        assert pipeline[0] == {"$match": {"accountId": {"$in": [sample_user_id, other]}}}

    @pytest.mark.asyncio
    async def test_count_for_no_accounts_skips_query(self, mock_db, mock_collection):
        store = MongoTokenStore(mock_db)

        assert await store.count_for_accounts([]) == {}
        mock_collection.aggregate.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_for_account(self, mock_db, mock_collection, sample_user_id):
        mock_collection.delete_many.return_value = MagicMock(deleted_count=3)
        store = MongoTokenStore(mock_db)

        assert await store.delete_for_account(sample_user_id) == 3
        mock_collection.delete_many.assert_awaited_once_with({"accountId": sample_user_id})

    @pytest.mark.asyncio
    async def test_ensure_indexes(self, mock_db, mock_collection):
        store = MongoTokenStore(mock_db)

        await store.ensure_indexes()

        mock_collection.create_index.assert_any_await([("accountId", 1), ("device", 1)], unique=True)
        mock_collection.create_index.assert_any_await("valueHash", unique=True)


# ─────────────────────────────────────────────────────────────────
# MongoSessionStore
# ─────────────────────────────────────────────────────────────────


class TestMongoSessionStore:
    @pytest.mark.asyncio
    async def test_extend(self, mock_db, mock_collection):
        mock_collection.update_one.return_value = MagicMock(matched_count=1)
        store = MongoSessionStore(mock_db)
        expires = NOW + timedelta(hours=24)

        assert await store.extend("sid-hash", expires) is True
        mock_collection.update_one.assert_awaited_once_with(
            {"sessionIdHash": "sid-hash"},
            {"$set": {"expiresAt": expires}},
        )
        mock_db.__getitem__.assert_called_with("sessions")

    @pytest.mark.asyncio
    async def test_extend_missing(self, mock_db, mock_collection):
        mock_collection.update_one.return_value = MagicMock(matched_count=0)
        store = MongoSessionStore(mock_db)

        assert await store.extend("sid-hash", NOW) is False

    @pytest.mark.asyncio
    async def test_find_maps_document(self, mock_db, mock_collection, sample_user_id):
        mock_collection.find_one.return_value = {
            "_id": ObjectId(),
            "sessionIdHash": "sid-hash",
            "accountId": sample_user_id,
            "csrfToken": "csrf",
            "expiresAt": NOW,
            "createdAt": NOW,
        }
        store = MongoSessionStore(mock_db)

        session = await store.find("sid-hash")

        assert session.accountId == sample_user_id
        assert session.csrfToken == "csrf"
