"""
MongoDB connection and database utilities.
Provides async MongoDB connection using Motor driver.
"""

from typing import Optional

from fastapi import Depends
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from ..core.config import Settings
from ..utils.logger import get_logger

logger = get_logger("database")

# Global MongoDB client instance
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo(settings: Settings) -> AsyncIOMotorDatabase:
    """
    Create database connection to MongoDB.
    Should be called once during application startup.
    """
    global _client, _database

    try:
        _client = AsyncIOMotorClient(settings.mongodb_url)
        _database = _client[settings.database_name]

        # Test the connection
        await _client.admin.command('ping')
        logger.info(f"Successfully connected to MongoDB at {settings.mongodb_url}")
        logger.info(f"Using database: {settings.database_name}")

    except Exception as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise

    return _database


async def close_mongo_connection():
    """
    Close database connection.
    Should be called during application shutdown.
    """
    global _client, _database

    if _client:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def get_database() -> AsyncIOMotorDatabase:
    """
    Get the database instance.

    Raises:
        RuntimeError: If database connection is not established
    """
    if _database is None:
        raise RuntimeError("Database connection not established. Call connect_to_mongo() first.")

    return _database


async def get_database_dependency() -> AsyncIOMotorDatabase:
    """Async dependency function for FastAPI dependency injection."""
    return get_database()


DatabaseDep = Depends(get_database_dependency)
