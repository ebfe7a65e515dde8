"""Shared test fixtures for identity service tests."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from identity.config import Settings
from identity.dependencies import build_gateway
from identity.services import EmailService, SearchIndex, TaskDispatcher
from identity.stores import InMemoryIdentityStore, InMemoryTokenStore, InMemorySessionStore


def make_settings(**overrides) -> Settings:
    values = {
        "JWT_SECRET": "test-secret",
        "PASSWORD_BCRYPT_ROUNDS": 4,
        "REINDEX_ON_STARTUP": False,
        "SEARCH_SERVICE_URL": None,
        "EMAIL_MODE": "console",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def sample_user_id():
    return str(ObjectId())


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def test_settings():
    return make_settings()


@pytest.fixture
def session_settings():
    return make_settings(AUTH_SCHEME="session")


# ─────────────────────────────────────────────────────────────────
# Stores and collaborators
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def identity_store():
    return InMemoryIdentityStore()


@pytest.fixture
def token_store():
    return InMemoryTokenStore()


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def search_index():
    index = AsyncMock(spec=SearchIndex)
    index.search.return_value = []
    return index


@pytest.fixture
def email_service():
    service = AsyncMock(spec=EmailService)
    service.send_welcome_email.return_value = {"success": True, "mode": "console"}
    return service


@pytest_asyncio.fixture
async def dispatcher():
    dispatcher = TaskDispatcher()
    yield dispatcher
    await dispatcher.drain()


@pytest.fixture
def gateway(identity_store, token_store, session_store, test_settings, search_index, email_service, dispatcher):
    """Gateway using the bearer (jwt) scheme over in-memory stores."""
    return build_gateway(
        identity_store,
        token_store,
        session_store,
        config=test_settings,
        search_index=search_index,
        email_service=email_service,
        dispatcher=dispatcher,
    )


@pytest.fixture
def session_gateway(identity_store, token_store, session_store, session_settings, search_index, email_service, dispatcher):
    """Gateway using the cookie session scheme over in-memory stores."""
    return build_gateway(
        identity_store,
        token_store,
        session_store,
        config=session_settings,
        search_index=search_index,
        email_service=email_service,
        dispatcher=dispatcher,
    )


# ─────────────────────────────────────────────────────────────────
# Mongo collection mocks
# ─────────────────────────────────────────────────────────────────


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() and aggregate() return cursors synchronously (not
    # coroutines), so use MagicMock for them. Async methods like find_one,
    # insert_one, count_documents etc. stay as AsyncMock.
    collection.find = MagicMock()
    collection.aggregate = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db
