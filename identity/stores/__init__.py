"""Persistence backends for accounts, refresh tokens and sessions."""

from identity.stores.base import IdentityStore, TokenStore, SessionStore, new_account_id
from identity.stores.mongo import MongoIdentityStore, MongoTokenStore, MongoSessionStore
from identity.stores.memory import InMemoryIdentityStore, InMemoryTokenStore, InMemorySessionStore

__all__ = [
    "IdentityStore",
    "TokenStore",
    "SessionStore",
    "new_account_id",
    "MongoIdentityStore",
    "MongoTokenStore",
    "MongoSessionStore",
    "InMemoryIdentityStore",
    "InMemoryTokenStore",
    "InMemorySessionStore",
]
