from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from app.core.config import Settings
import logging

logger = logging.getLogger(__name__)


class MongoDB:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.client: AsyncIOMotorClient = None
        self.database = None

    async def connect(self):
        try:
            self.client = AsyncIOMotorClient(
                self.settings.MONGODB_URL,
                serverSelectionTimeoutMS=self.settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
                socketTimeoutMS=self.settings.MONGODB_SOCKET_TIMEOUT_MS,
            )
            self.database = self.client[self.settings.MONGODB_DB_NAME]

            # Test connection
            await self.client.admin.command("ping")

            # Create indexes
            await self.create_indexes()

            logger.info("✅ Connected to MongoDB successfully")

        except Exception as e:
            logger.error(f"❌ Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("✅ MongoDB connection closed")

    async def create_indexes(self):
        try:
            contacts = self.contacts
            await contacts.create_index([("email", ASCENDING)])
            await contacts.create_index([("status", ASCENDING)])
            await contacts.create_index([("created_at", DESCENDING)])
            await contacts.create_index([("is_archived", ASCENDING), ("status", ASCENDING)])

            logger.info("✅ Database indexes created successfully")

        except Exception as e:
            logger.error(f"❌ Failed to create indexes: {e}")
            raise

    @property
    def contacts(self) -> AsyncIOMotorCollection:
        return self.database[self.settings.CONTACTS_COLLECTION]


def get_contacts_collection(request: Request) -> AsyncIOMotorCollection:
    return request.app.state.mongodb.contacts
