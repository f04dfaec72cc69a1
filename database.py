"""
MongoDB connection

`db` is a pymongo Database when DATABASE_URL is configured and reachable,
otherwise None. The application keeps running without it; only the
session store falls back to memory.
"""
import logging
from typing import Optional

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import DATABASE_URL, DATABASE_NAME

logger = logging.getLogger(__name__)


def connect(url: Optional[str], name: str) -> Optional[Database]:
    if not url:
        logger.info("DATABASE_URL not set, running without MongoDB")
        return None
    try:
        client = MongoClient(
            url,
            serverSelectionTimeoutMS=5000,
            socketTimeoutMS=45000,
            maxPoolSize=50,
        )
        client.admin.command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB connection error: {e}")
        logger.warning("Server will continue running without database connection")
        return None
    logger.info("MongoDB connected successfully")
    return client[name]


def ping(database: Optional[Database] = None) -> bool:
    """Return True when the database answers a ping."""
    database = db if database is None else database
    if database is None:
        return False
    try:
        database.client.admin.command("ping")
        return True
    except PyMongoError as e:
        logger.error(f"MongoDB runtime error: {e}")
        return False


db = connect(DATABASE_URL, DATABASE_NAME)
