"""One-time migration script: backfill duration on completed time entries.

Entries stopped before durations were stored get their duration recomputed
from start_time, end_time and total_paused_time, and their pause fields
normalized. A stored duration of 0 is kept; it may be a manual edit.

Usage:
    python scripts/migrate_timer_duration.py \\
        --mongodb-url mongodb://localhost:27017 \\
        --db-name time_tracking \\
        [--dry-run]
"""
import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from app.utils.clock import compute_duration

MISSING_DURATION_QUERY = {
    "$or": [
        {"duration": {"$exists": False}},
        {"duration": None},
    ],
    "start_time": {"$ne": None},
    "end_time": {"$ne": None},
}


class DurationMigrator:
    """Recomputes stored durations for completed time entries."""

    def __init__(self, time_entries, dry_run: bool = False):
        """Initialize migrator.

        Args:
            time_entries: time_entries collection
            dry_run: Report what would change without writing
        """
        self.time_entries = time_entries
        self.dry_run = dry_run
        self.stats = {"total": 0, "updated": 0, "skipped": 0}

    async def migrate(self) -> dict:
        """Backfill every matching entry and return the stats."""
        cursor = self.time_entries.find(MISSING_DURATION_QUERY)
        docs = await cursor.to_list(length=None)
        print(f"Found {len(docs)} time entries to migrate")

        for doc in docs:
            self.stats["total"] += 1
            try:
                await self.migrate_entry(doc)
            except PyMongoError as e:
                print(f"  ✗ Error updating time entry {doc['_id']}: {e}")
                self.stats["skipped"] += 1
                continue

            if self.stats["updated"] and self.stats["updated"] % 100 == 0:
                print(f"  Migrated {self.stats['updated']} time entries...")

        return self.stats

    async def migrate_entry(self, doc: dict) -> Optional[int]:
        """Recompute and store one entry's duration.

        Returns:
            The new duration, or None if the entry was skipped
        """
        start_time = doc.get("start_time")
        end_time = doc.get("end_time")
        if not start_time or not end_time:
            self.stats["skipped"] += 1
            return None

        paused_ms = doc.get("total_paused_time") or 0
        duration = compute_duration(start_time, end_time, paused_ms)

        if not self.dry_run:
            await self.time_entries.update_one(
                {"_id": doc["_id"]},
                {
                    "$set": {
                        "duration": duration,
                        "is_paused": False,
                        "paused_at": None,
                        "total_paused_time": paused_ms,
                    }
                },
            )

        self.stats["updated"] += 1
        return duration

    def print_summary(self):
        """Print migration summary."""
        prefix = "[dry run] " if self.dry_run else ""
        print(f"\n{prefix}Migration completed!")
        print(f"  - Updated: {self.stats['updated']} time entries")
        print(f"  - Skipped: {self.stats['skipped']} time entries")


async def main():
    """Main migration function."""
    parser = argparse.ArgumentParser(description="Backfill time entry durations")
    parser.add_argument("--mongodb-url", required=True, help="MongoDB connection URL")
    parser.add_argument("--db-name", default="time_tracking", help="Database name")
    parser.add_argument("--dry-run", action="store_true", help="Do not write changes")

    args = parser.parse_args()

    client = AsyncIOMotorClient(args.mongodb_url)
    print(f"Connected to MongoDB database: {args.db_name}")

    try:
        migrator = DurationMigrator(client[args.db_name]["time_entries"], dry_run=args.dry_run)
        await migrator.migrate()
        migrator.print_summary()
    finally:
        client.close()
        print("Closed MongoDB connection")


if __name__ == "__main__":
    asyncio.run(main())
