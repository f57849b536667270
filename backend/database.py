from motor.motor_asyncio import AsyncIOMotorClient
import os
import logging
from typing import Optional

from utils.env import get_env

logger = logging.getLogger(__name__)

# Bound every store round-trip; webhook handling must finish before Stripe's delivery timeout
DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000
DEFAULT_SOCKET_TIMEOUT_MS = 5000


class Database:
    """MongoDB connection holder.

    Constructed once in the application lifespan and handed to the services that
    need it (EntitlementStore, InflationSeriesProvider, EmailService). There is no
    module-level instance.
    """

    def __init__(self, mongo_url: Optional[str] = None, db_name: Optional[str] = None):
        self.mongo_url = mongo_url
        self.db_name = db_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.db = None

    async def connect(self):
        try:
            mongo_url = self.mongo_url or get_env("MONGO_URL")
            self.db_name = self.db_name or get_env("DB_NAME")
            self.client = AsyncIOMotorClient(
                mongo_url,
                serverSelectionTimeoutMS=int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", DEFAULT_SERVER_SELECTION_TIMEOUT_MS)),
                socketTimeoutMS=int(os.getenv("MONGO_SOCKET_TIMEOUT_MS", DEFAULT_SOCKET_TIMEOUT_MS)),
                tz_aware=True,
            )
            self.db = self.client[self.db_name]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {self.db_name}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes. The unique keys back the single-row invariants."""
        # One live grant row per identity; concurrent first grants race on this index
        await self.db.access_grants.create_index("identity", unique=True)
        await self.db.access_grants.create_index("valid_until")

        # A series must never contain duplicate years for a country
        await self.db.macro_data.create_index([("country", 1), ("year", 1)], unique=True)

        await self.db.message_logs.create_index("message_id", unique=True)
        await self.db.message_logs.create_index([("recipient", 1), ("created_at", -1)])

        logger.info("MongoDB indexes ensured")
