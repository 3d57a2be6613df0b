"""Timer service - business logic for time tracking.

Every mutation is a single conditional update against ``time_entries``,
scoped on the state the transition expects, so two requests racing on the
same timer can never both apply.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.exceptions import NotFoundError, PersistenceError, ValidationError, translate_store_errors
from app.models.time_entry import ManualTimeEntryCreate, TimeEntry, TimeEntryUpdate
from app.utils.clock import as_naive_utc, compute_duration, elapsed_ms, shift_to_date, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TIMER_DESCRIPTION = "Timer session"
DEFAULT_MANUAL_DESCRIPTION = "Manual time entry"


class TimerService:
    """Service for handling time tracking operations."""

    def __init__(self, db, clock: Optional[Callable[[], datetime]] = None):
        """Initialize service with database connection and an optional UTC clock."""
        self.db = db
        self.time_entries = db["time_entries"]
        self.clock = clock or utcnow

    def _doc_to_entry(self, doc: dict) -> TimeEntry:
        """
        Convert database document to TimeEntry model.
        """
        return TimeEntry.from_doc(doc)

    def _open_filter(self, user_id: Optional[str], project_id: Optional[str], task_id: Optional[str]) -> dict:
        """
        Build the open-entry filter for a (user, project, task) triple.

        Raises:
            ValidationError: If any identifier is missing or blank
        """
        if not all(value and value.strip() for value in (user_id, project_id, task_id)):
            raise ValidationError("userId, projectId, and taskId are required")

        return {
            "user_id": user_id,
            "project_id": project_id,
            "task_id": task_id,
            "end_time": None,
        }

    def _object_id(self, entry_id: str) -> ObjectId:
        try:
            return ObjectId(entry_id)
        except (InvalidId, TypeError):
            raise NotFoundError("No time entry found with that ID")

    async def _upsert_open_entry(self, query: dict, update: dict) -> dict:
        return await self.time_entries.find_one_and_update(
            query,
            update,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    @translate_store_errors
    async def start_timer(
        self,
        user_id: Optional[str],
        project_id: Optional[str],
        task_id: Optional[str],
        description: Optional[str] = None,
    ) -> TimeEntry:
        """
        Start a timer, or restart the open one for the same triple.

        An open entry has its start time reset to now and its pause
        accounting cleared; otherwise a new entry is created. Both cases
        are one upsert on the open-entry filter. If a concurrent start
        inserted first, the unique index rejects ours and the retry lands
        on the winner's entry.

        Args:
            user_id: User ID
            project_id: Project ID
            task_id: Task ID
            description: Optional description (kept from the open entry if omitted)

        Returns:
            The running time entry

        Raises:
            ValidationError: If any identifier is missing
        """
        query = self._open_filter(user_id, project_id, task_id)
        now = self.clock()

        set_doc = {
            "start_time": now,
            "duration": 0,
            "is_paused": False,
            "paused_at": None,
            "total_paused_time": 0,
            "updated_at": now,
        }
        set_on_insert = {
            "end_time": None,
            "created_at": now,
        }
        if description:
            set_doc["description"] = description
        else:
            set_on_insert["description"] = DEFAULT_TIMER_DESCRIPTION

        update = {"$set": set_doc, "$setOnInsert": set_on_insert}

        try:
            doc = await self._upsert_open_entry(query, update)
        except DuplicateKeyError:
            logger.info(
                "Concurrent start for user=%s project=%s task=%s, retrying on existing entry",
                user_id, project_id, task_id,
            )
            doc = await self._upsert_open_entry(query, update)

        logger.info(
            "Started timer %s for user=%s project=%s task=%s",
            doc["_id"], user_id, project_id, task_id,
        )
        return self._doc_to_entry(doc)

    @translate_store_errors
    async def pause_timer(
        self,
        user_id: Optional[str],
        project_id: Optional[str],
        task_id: Optional[str],
    ) -> TimeEntry:
        """
        Pause the running timer for a triple.

        Raises:
            ValidationError: If any identifier is missing
            NotFoundError: If there is no open, unpaused timer
        """
        query = self._open_filter(user_id, project_id, task_id)
        query["is_paused"] = {"$ne": True}
        now = self.clock()

        doc = await self.time_entries.find_one_and_update(
            query,
            {"$set": {"is_paused": True, "paused_at": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )

        if not doc:
            raise NotFoundError("No running timer found to pause")

        logger.info("Paused timer %s", doc["_id"])
        return self._doc_to_entry(doc)

    @translate_store_errors
    async def resume_timer(
        self,
        user_id: Optional[str],
        project_id: Optional[str],
        task_id: Optional[str],
    ) -> TimeEntry:
        """
        Resume a paused timer, folding the pause into total_paused_time.

        Raises:
            ValidationError: If any identifier is missing
            NotFoundError: If there is no open, paused timer
            PersistenceError: If the timer changed between read and write
        """
        query = self._open_filter(user_id, project_id, task_id)
        query["is_paused"] = True

        paused = await self.time_entries.find_one(query)
        if not paused:
            raise NotFoundError("No paused timer found to resume")

        now = self.clock()
        paused_at = paused.get("paused_at")
        pause_ms = max(elapsed_ms(paused_at, now), 0) if paused_at else 0

        doc = await self.time_entries.find_one_and_update(
            {"_id": paused["_id"], "end_time": None, "is_paused": True, "paused_at": paused_at},
            {
                "$set": {"is_paused": False, "paused_at": None, "updated_at": now},
                "$inc": {"total_paused_time": pause_ms},
            },
            return_document=ReturnDocument.AFTER,
        )

        if not doc:
            logger.warning("Timer %s changed while resuming", paused["_id"])
            raise PersistenceError("Timer was modified concurrently, reload and try again")

        logger.info("Resumed timer %s after %d ms paused", doc["_id"], pause_ms)
        return self._doc_to_entry(doc)

    @translate_store_errors
    async def stop_timer(
        self,
        user_id: Optional[str],
        project_id: Optional[str],
        task_id: Optional[str],
        description: Optional[str] = None,
    ) -> TimeEntry:
        """
        Stop the open timer for a triple and compute its duration.

        A timer stopped while paused has its final pause counted as paused
        time. Duration is whole minutes, never negative.

        Args:
            user_id: User ID
            project_id: Project ID
            task_id: Task ID
            description: Optional replacement description

        Returns:
            Completed time entry with end_time and duration

        Raises:
            ValidationError: If any identifier is missing
            NotFoundError: If there is no open timer
            PersistenceError: If the timer changed between read and write
        """
        query = self._open_filter(user_id, project_id, task_id)

        running = await self.time_entries.find_one(query)
        if not running:
            raise NotFoundError("No running timer found for this user, project, and task")

        now = self.clock()
        paused_at = running.get("paused_at")
        final_pause_ms = 0
        if running.get("is_paused") and paused_at:
            final_pause_ms = max(elapsed_ms(paused_at, now), 0)

        total_paused_ms = (running.get("total_paused_time") or 0) + final_pause_ms
        duration = compute_duration(running["start_time"], now, total_paused_ms)

        set_doc = {
            "end_time": now,
            "duration": duration,
            "is_paused": False,
            "paused_at": None,
            "updated_at": now,
        }
        if description:
            set_doc["description"] = description

        doc = await self.time_entries.find_one_and_update(
            {
                "_id": running["_id"],
                "end_time": None,
                "start_time": running["start_time"],
                "paused_at": paused_at,
            },
            {"$set": set_doc, "$inc": {"total_paused_time": final_pause_ms}},
            return_document=ReturnDocument.AFTER,
        )

        if not doc:
            logger.warning("Timer %s changed while stopping", running["_id"])
            raise PersistenceError("Timer was modified concurrently, reload and try again")

        logger.info("Stopped timer %s, duration=%d min", doc["_id"], duration)
        return self._doc_to_entry(doc)

    @translate_store_errors
    async def log_manual_time(self, entry_create: ManualTimeEntryCreate) -> TimeEntry:
        """
        Create a completed time entry directly.

        Manual entries skip the open-timer check and may overlap a live
        timer for the same triple.

        Raises:
            ValidationError: If a required field is missing or end precedes start
        """
        ids = (entry_create.user, entry_create.project, entry_create.task)
        if (
            not all(value and value.strip() for value in ids)
            or entry_create.start_time is None
            or entry_create.end_time is None
        ):
            raise ValidationError("user, project, task, startTime, and endTime are required")

        start_time = as_naive_utc(entry_create.start_time)
        end_time = as_naive_utc(entry_create.end_time)
        if end_time < start_time:
            raise ValidationError("endTime must not be before startTime")

        now = self.clock()
        entry_doc = {
            "user_id": entry_create.user,
            "project_id": entry_create.project,
            "task_id": entry_create.task,
            "description": entry_create.description or DEFAULT_MANUAL_DESCRIPTION,
            "start_time": start_time,
            "end_time": end_time,
            "duration": compute_duration(start_time, end_time),
            "is_paused": False,
            "paused_at": None,
            "total_paused_time": 0,
            "created_at": now,
            "updated_at": now,
        }

        result = await self.time_entries.insert_one(entry_doc)
        entry_doc["_id"] = result.inserted_id

        logger.info(
            "Logged %d min manually as %s for user=%s",
            entry_doc["duration"], result.inserted_id, entry_create.user,
        )
        return self._doc_to_entry(entry_doc)

    @translate_store_errors
    async def get_time_entry(self, entry_id: str) -> TimeEntry:
        """
        Get a time entry by ID.

        Raises:
            NotFoundError: If entry not found
        """
        doc = await self.time_entries.find_one({"_id": self._object_id(entry_id)})
        if not doc:
            raise NotFoundError("No time entry found with that ID")
        return self._doc_to_entry(doc)

    @translate_store_errors
    async def update_time_entry(
        self,
        entry_id: str,
        entry_update: TimeEntryUpdate,
    ) -> TimeEntry:
        """
        Edit a time entry.

        A supplied duration replaces the stored one as-is. A supplied date
        moves start_time and end_time to that calendar day, keeping their
        time-of-day; duration is not recomputed.

        Args:
            entry_id: Time entry ID
            entry_update: Update data

        Returns:
            Updated time entry

        Raises:
            NotFoundError: If entry not found
            PersistenceError: If the entry changed between read and write
        """
        object_id = self._object_id(entry_id)

        existing = await self.time_entries.find_one({"_id": object_id})
        if not existing:
            raise NotFoundError("No time entry found with that ID")

        # Build update document
        update_doc = {
            "updated_at": self.clock(),
        }

        if entry_update.duration is not None:
            update_doc["duration"] = entry_update.duration
        if entry_update.entry_date is not None:
            start_time = existing.get("start_time")
            end_time = existing.get("end_time")
            anchor = start_time or end_time
            if anchor is not None:
                update_doc["start_time"] = shift_to_date(start_time, entry_update.entry_date, anchor.date())
                update_doc["end_time"] = shift_to_date(end_time, entry_update.entry_date, anchor.date())
        if entry_update.description is not None:
            update_doc["description"] = entry_update.description

        updated_doc = await self.time_entries.find_one_and_update(
            {
                "_id": object_id,
                "start_time": existing.get("start_time"),
                "end_time": existing.get("end_time"),
            },
            {"$set": update_doc},
            return_document=ReturnDocument.AFTER,
        )

        if not updated_doc:
            logger.warning("Time entry %s changed while updating", entry_id)
            raise PersistenceError("Time entry was modified concurrently, reload and try again")

        return self._doc_to_entry(updated_doc)

    @translate_store_errors
    async def delete_time_entry(self, entry_id: str) -> None:
        """
        Permanently delete a time entry.

        Raises:
            NotFoundError: If entry not found
        """
        result = await self.time_entries.delete_one({"_id": self._object_id(entry_id)})

        if result.deleted_count == 0:
            raise NotFoundError("No time entry found with that ID")

        logger.info("Deleted time entry %s", entry_id)
