"""
MongoDB connection manager built on Motor.

Stores talk to Motor collections directly and create their own indexes;
this module only owns the client and the process-wide database handle.

Example:
    from common.database import MongoDB, set_main_database

    db = MongoDB()
    await db.connect(uri="mongodb://localhost:27017", database_name="identity")
    set_main_database(db)

    users = db.get_collection("users")
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

_main_database: Optional["MongoDB"] = None


def _mask_uri(uri: str) -> str:
    """Drop the credentials part of a connection string for logging."""
    return uri.rsplit("@", 1)[-1] if "@" in uri else uri


class MongoDB:
    """Owns one Motor client and the name of the database it serves."""

    def __init__(self):
        self._client: Optional[AsyncIOMotorClient] = None
        self._database_name: Optional[str] = None

    async def connect(
        self,
        uri: str,
        database_name: str,
        server_selection_timeout_ms: int = 5000,
        ping: bool = True,
    ) -> None:
        """
        Open the client and, unless ``ping`` is False, round-trip a ``ping``
        so an unreachable server fails startup instead of the first request.

        Datetimes come back timezone-aware (UTC); expiry checks compare them
        against ``datetime.now(timezone.utc)``.
        """
        logger.info(f"Connecting to MongoDB: {_mask_uri(uri)} (database {database_name})")

        try:
            self._client = AsyncIOMotorClient(
                uri,
                tz_aware=True,
                serverSelectionTimeoutMS=server_selection_timeout_ms,
            )
            self._database_name = database_name
            if ping:
                await self._client.admin.command("ping")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

        logger.info(f"Connected to MongoDB database: {database_name}")

    async def disconnect(self) -> None:
        if self._client is None:
            return
        logger.info(f"Disconnecting from MongoDB database: {self._database_name}")
        self._client.close()
        self._client = None
        self._database_name = None

    @property
    def database_name(self) -> Optional[str]:
        return self._database_name

    @property
    def db(self) -> AsyncIOMotorDatabase:
        """The Motor database handle. Raises RuntimeError before ``connect``."""
        if self._client is None or not self._database_name:
            raise RuntimeError("Database not connected")
        return self._client[self._database_name]

    def get_collection(self, name: str):
        return self.db[name]


def set_main_database(db: MongoDB) -> None:
    global _main_database
    _main_database = db
    logger.info("Main database singleton set")


def get_main_database() -> MongoDB:
    """
    Get the process-wide database set during startup.

    Raises:
        RuntimeError: If ``set_main_database`` has not been called
    """
    if _main_database is None:
        raise RuntimeError("Main database not initialized. Call set_main_database() first.")
    return _main_database
