"""
Full-text search collaborator.

The identity service does not search accounts itself; it keeps an external
search service up to date and asks it for matching account ids. Every call
is best-effort: failures are logged here and never raised.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx

from identity.models import Account

logger = logging.getLogger(__name__)


def _document(account: Account) -> dict:
    """Searchable fields of an account (never credentials)."""
    return {
        "id": account.id,
        "name": account.name,
        "surname": account.surname,
        "email": account.email,
        "phoneNumber": account.phoneNumber,
        "roles": [role.value for role in account.roles],
        "isBlocked": account.isBlocked,
        "provider": account.provider.value,
    }


class SearchIndex(ABC):

    @abstractmethod
    async def upsert(self, account: Account) -> None:
        ...

    @abstractmethod
    async def delete(self, account: Account) -> None:
        ...

    @abstractmethod
    async def bulk_upsert(self, accounts: List[Account]) -> None:
        ...

    @abstractmethod
    async def search(self, query: str) -> List[str]:
        """Ids of matching accounts, best match first. Empty on failure."""


class LoggingSearchIndex(SearchIndex):
    """Used when no search service is configured."""

    async def upsert(self, account: Account) -> None:
        logger.debug(f"Search index disabled, skipping upsert of {account.id}")

    async def delete(self, account: Account) -> None:
        logger.debug(f"Search index disabled, skipping delete of {account.id}")

    async def bulk_upsert(self, accounts: List[Account]) -> None:
        logger.info(f"Search index disabled, skipping reindex of {len(accounts)} account(s)")

    async def search(self, query: str) -> List[str]:
        logger.debug("Search index disabled, returning no results")
        return []


class HttpSearchIndex(SearchIndex):
    """
    Talks to the search service over HTTP.

    Endpoints (relative to ``base_url``):
        PUT    /users/{id}      index one account
        DELETE /users/{id}      remove one account
        POST   /users/bulk      replace documents for many accounts
        GET    /users/search    ?q=... -> {"ids": [...]}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def upsert(self, account: Account) -> None:
        async with self._client() as client:
            try:
                response = await client.put(f"/users/{account.id}", json=_document(account))
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to index account {account.id}: {e}")

    async def delete(self, account: Account) -> None:
        async with self._client() as client:
            try:
                response = await client.delete(f"/users/{account.id}")
                if response.status_code != 404:
                    response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Failed to remove account {account.id} from index: {e}")

    async def bulk_upsert(self, accounts: List[Account]) -> None:
        async with self._client() as client:
            try:
                response = await client.post(
                    "/users/bulk",
                    json={"users": [_document(account) for account in accounts]},
                )
                response.raise_for_status()
                logger.info(f"Reindexed {len(accounts)} account(s)")
            except httpx.HTTPError as e:
                logger.error(f"Bulk reindex of {len(accounts)} account(s) failed: {e}")

    async def search(self, query: str) -> List[str]:
        async with self._client() as client:
            try:
                response = await client.get("/users/search", params={"q": query})
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Search request failed: {e}")
                return []

        ids = data.get("ids") if isinstance(data, dict) else None
        if not isinstance(ids, list):
            logger.warning("Search service returned an unexpected payload")
            return []
        return [str(account_id) for account_id in ids]
