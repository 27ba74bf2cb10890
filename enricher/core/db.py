"""
MongoDB Database Connection

Async motor client and the products collection used by the record store.
"""

import os
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from enricher.core.config import Config
from enricher.core.errors import ConfigError
from enricher.utils.logger import get_logger

logger = get_logger(__name__)

_client: Optional[AsyncIOMotorClient] = None


def get_mongo_uri() -> str:
    """Get MongoDB URI from environment"""
    uri = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")
    if not uri:
        logger.error("MongoDB environment variable (MONGO_URI or MONGODB_URI) not set!")
        raise ConfigError("MongoDB connection string is required in environment variables", key="MONGO_URI")
    return uri


def get_client() -> AsyncIOMotorClient:
    """Get MongoDB client (singleton)"""
    global _client
    if _client is None:
        # tz_aware so stored timestamps compare with aware UTC datetimes
        _client = AsyncIOMotorClient(get_mongo_uri(), tz_aware=True)
        logger.info("MongoDB client initialized")
    return _client


def get_db():
    return get_client()[Config.get("mongo", "database", default="narratives")]


def get_records_col():
    """Collection holding refreshable product records"""
    return get_db()[Config.get("mongo", "collection", default="products")]


async def close_db():
    """Close MongoDB connection"""
    global _client
    if _client:
        _client.close()
        _client = None
        logger.info("MongoDB connection closed")


async def ping_db() -> bool:
    """
    Ping MongoDB to check connection

    Returns:
        bool: True if connected, False otherwise
    """
    try:
        await get_client().admin.command('ping')
        return True
    except (PyMongoError, ConfigError) as e:
        logger.error(f"MongoDB connection failed: {e}")
        return False
