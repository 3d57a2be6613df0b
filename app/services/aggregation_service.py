"""Aggregation service - logged-hours rollups over time entries.

Rollups are read-only projections of the store. They are not isolated
from concurrent timer writes, so a rollup may include an entry that is
still running (duration 0).
"""
from collections import defaultdict
from typing import Iterable, Optional

from bson import ObjectId

from app.exceptions import translate_store_errors
from app.models.responses import HoursSummary
from app.models.time_entry import RelatedRef, TimeEntry, TimeEntryDetail


def logged_hours(entries: Iterable[TimeEntry]) -> float:
    """
    Total logged hours for a set of entries, rounded to one decimal.

    The integer minute sum is taken first, so the result does not depend
    on entry order.

    Example:
        >>> logged_hours([])
        0.0
    """
    total_minutes = sum(entry.duration for entry in entries)
    return round(total_minutes / 60, 1)


def hours_by(entries: Iterable[TimeEntry], key: str) -> dict[str, float]:
    """
    Logged hours per value of an entry attribute (e.g. "task_id").

    Args:
        entries: Time entries to group
        key: TimeEntry attribute to group by

    Returns:
        Mapping of attribute value to logged hours
    """
    minutes: dict[str, int] = defaultdict(int)
    for entry in entries:
        minutes[getattr(entry, key)] += entry.duration
    return {group: round(total / 60, 1) for group, total in minutes.items()}


def _object_ids(ids: Iterable[str]) -> list[ObjectId]:
    return [ObjectId(value) for value in set(ids) if ObjectId.is_valid(value)]


class AggregationService:
    """Service for reading time entries and rolling them up."""

    def __init__(self, db):
        """Initialize service with database connection."""
        self.db = db
        self.time_entries = db["time_entries"]
        self.projects = db["projects"]
        self.tasks = db["tasks"]
        self.users = db["users"]

    def _doc_to_detail(self, doc: dict, related: dict[str, dict[str, RelatedRef]]) -> TimeEntryDetail:
        """
        Convert database document to TimeEntryDetail, attaching related refs.
        """
        return TimeEntryDetail.from_doc(
            doc,
            project=related.get("project", {}).get(str(doc["project_id"])),
            task=related.get("task", {}).get(str(doc["task_id"])),
            user=related.get("user", {}).get(str(doc["user_id"])),
        )

    async def _lookup(self, collection, ids: Iterable[str], fields: tuple[str, ...]) -> dict[str, RelatedRef]:
        """Fetch display fields for referenced documents, keyed by id."""
        object_ids = _object_ids(ids)
        if not object_ids:
            return {}

        projection = {field: 1 for field in fields}
        cursor = collection.find({"_id": {"$in": object_ids}}, projection)
        docs = await cursor.to_list(length=None)

        return {
            str(doc["_id"]): RelatedRef(id=str(doc["_id"]), **{field: doc.get(field) for field in fields})
            for doc in docs
        }

    async def _list(self, query: dict, expand: tuple[str, ...]) -> list[TimeEntryDetail]:
        cursor = self.time_entries.find(query).sort("start_time", -1)
        docs = await cursor.to_list(length=None)

        related = {}
        if "project" in expand:
            related["project"] = await self._lookup(
                self.projects, (str(doc["project_id"]) for doc in docs), ("name",)
            )
        if "task" in expand:
            related["task"] = await self._lookup(
                self.tasks, (str(doc["task_id"]) for doc in docs), ("title",)
            )
        if "user" in expand:
            related["user"] = await self._lookup(
                self.users, (str(doc["user_id"]) for doc in docs), ("name", "email")
            )

        return [self._doc_to_detail(doc, related) for doc in docs]

    @translate_store_errors
    async def entries_for_user(self, user_id: str) -> list[TimeEntryDetail]:
        """
        List a user's time entries, most recent first.

        Each entry carries the display fields of its project and task.
        """
        return await self._list({"user_id": user_id}, expand=("project", "task"))

    @translate_store_errors
    async def entries_for_project(self, project_id: str) -> list[TimeEntryDetail]:
        """
        List a project's time entries, most recent first.

        Each entry carries the display fields of its user and task.
        """
        return await self._list({"project_id": project_id}, expand=("user", "task"))

    @translate_store_errors
    async def user_summary(self, user_id: str, project_id: Optional[str] = None) -> HoursSummary:
        """
        Logged hours for a user, broken down by project and by task.

        Args:
            user_id: User ID
            project_id: Optional project filter
        """
        query = {"user_id": user_id}
        if project_id:
            query["project_id"] = project_id

        entries = await self._list(query, expand=())
        return HoursSummary(
            total_hours=logged_hours(entries),
            entry_count=len(entries),
            by_project=hours_by(entries, "project_id"),
            by_task=hours_by(entries, "task_id"),
        )

    @translate_store_errors
    async def project_summary(self, project_id: str) -> HoursSummary:
        """Logged hours for a project, broken down by task and by user."""
        entries = await self._list({"project_id": project_id}, expand=())
        return HoursSummary(
            total_hours=logged_hours(entries),
            entry_count=len(entries),
            by_task=hours_by(entries, "task_id"),
            by_user=hours_by(entries, "user_id"),
        )
