"""MongoDB database connection using Motor (async driver)."""
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from app.config import settings

logger = logging.getLogger(__name__)

TIME_ENTRIES = "time_entries"


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """
    Create the indexes the time entry store relies on.

    The partial unique index is what makes concurrent starts for the same
    (user, project, task) triple collapse onto a single open entry.
    """
    time_entries = db[TIME_ENTRIES]
    await time_entries.create_index(
        [("user_id", ASCENDING), ("project_id", ASCENDING), ("task_id", ASCENDING)],
        name="one_open_timer_per_triple",
        unique=True,
        partialFilterExpression={"end_time": {"$type": "null"}},
    )
    await time_entries.create_index(
        [("user_id", ASCENDING), ("project_id", ASCENDING)],
        name="user_project",
    )
    await time_entries.create_index(
        [("project_id", ASCENDING), ("start_time", DESCENDING)],
        name="project_start_time",
    )


class Database:
    """MongoDB database connection manager."""

    client: AsyncIOMotorClient | None = None
    db: AsyncIOMotorDatabase | None = None

    async def connect(self) -> None:
        """Connect to MongoDB and make sure indexes exist."""
        self.client = AsyncIOMotorClient(settings.mongodb_url)
        self.db = self.client[settings.mongodb_db_name]
        await ensure_indexes(self.db)
        logger.info("Connected to MongoDB: %s", settings.mongodb_db_name)

    async def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")


# Global database instance
database = Database()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency to get database instance."""
    if database.db is None:
        raise RuntimeError("Database not connected")
    return database.db
