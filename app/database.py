"""MongoDB database connection using Motor (async driver)"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from app.config import settings
import logging

logger = logging.getLogger(__name__)


class Database:
    """Database connection manager"""
    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None


database = Database()


async def connect_to_mongo():
    """Connect to MongoDB on application startup"""
    database.client = AsyncIOMotorClient(settings.mongodb_url)
    database.db = database.client[settings.mongodb_db_name]
    logger.info(f"Connected to MongoDB: {settings.mongodb_db_name}")


async def close_mongo_connection():
    """Close MongoDB connection on application shutdown"""
    if database.client:
        database.client.close()
        database.client = None
        database.db = None
        logger.info("Closed MongoDB connection")


async def ensure_chat_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes the support chat queries rely on"""
    await db.chat_rooms.create_index([("customer_id", ASCENDING)])
    await db.chat_rooms.create_index([("assigned_staff_id", ASCENDING)])
    await db.chat_rooms.create_index([("status", ASCENDING)])
    await db.chat_rooms.create_index([("created_at", DESCENDING)])

    await db.chat_messages.create_index([("room_id", ASCENDING), ("created_at", DESCENDING)])
    await db.chat_messages.create_index([("sender_id", ASCENDING)])
    await db.chat_messages.create_index([("created_at", DESCENDING)])
