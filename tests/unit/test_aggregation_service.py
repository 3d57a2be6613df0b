"""Tests for AggregationService and the rollup helpers."""
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from app.models.time_entry import TimeEntry


def make_entry(duration: int, **overrides) -> TimeEntry:
    now = datetime(2024, 1, 1, 9, 0)
    data = {
        "_id": str(ObjectId()),
        "user_id": "user123",
        "project_id": "project1",
        "task_id": "task1",
        "start_time": now,
        "end_time": now + timedelta(minutes=duration),
        "duration": duration,
        "created_at": now,
        "updated_at": now,
    }
    data.update(overrides)
    return TimeEntry(**data)


class TestLoggedHours:
    """Tests for logged_hours."""

    def test_sums_minutes_to_hours(self):
        from app.services.aggregation_service import logged_hours

        entries = [make_entry(30), make_entry(45), make_entry(15)]
        assert logged_hours(entries) == 1.5

    def test_order_independent(self):
        from app.services.aggregation_service import logged_hours

        entries = [make_entry(d) for d in (7, 13, 22, 41, 1, 59)]
        assert logged_hours(entries) == logged_hours(list(reversed(entries)))
        assert logged_hours(entries) == logged_hours(sorted(entries, key=lambda e: e.duration))

    def test_rounds_to_one_decimal(self):
        from app.services.aggregation_service import logged_hours

        assert logged_hours([make_entry(20)]) == 0.3
        assert logged_hours([make_entry(100)]) == 1.7

    def test_empty(self):
        from app.services.aggregation_service import logged_hours

        assert logged_hours([]) == 0.0

    def test_open_entries_count_as_zero(self):
        from app.services.aggregation_service import logged_hours

        running = make_entry(0, end_time=None)
        assert logged_hours([running, make_entry(60)]) == 1.0


class TestHoursBy:
    """Tests for hours_by."""

    def test_groups_by_task(self):
        from app.services.aggregation_service import hours_by

        entries = [
            make_entry(30, task_id="a"),
            make_entry(30, task_id="a"),
            make_entry(90, task_id="b"),
        ]
        assert hours_by(entries, "task_id") == {"a": 1.0, "b": 1.5}

    def test_groups_by_user(self):
        from app.services.aggregation_service import hours_by

        entries = [make_entry(60, user_id="u1"), make_entry(18, user_id="u2")]
        assert hours_by(entries, "user_id") == {"u1": 1.0, "u2": 0.3}


def seed(fake_db, **overrides) -> dict:
    now = datetime(2024, 1, 1, 9, 0)
    doc = {
        "_id": ObjectId(),
        "user_id": "user123",
        "project_id": "project1",
        "task_id": "task1",
        "description": "Work",
        "start_time": now,
        "end_time": now + timedelta(minutes=60),
        "duration": 60,
        "is_paused": False,
        "paused_at": None,
        "total_paused_time": 0,
        "created_at": now,
        "updated_at": now,
    }
    doc.update(overrides)
    fake_db["time_entries"].docs.append(doc)
    return doc


@pytest.mark.asyncio
class TestAggregationServiceEntries:
    """Tests for listing entries with related details."""

    async def test_entries_for_user_expands_project_and_task(self, fake_db):
        from app.services.aggregation_service import AggregationService

        project_id, task_id = ObjectId(), ObjectId()
        fake_db["projects"].docs.append({"_id": project_id, "name": "Website"})
        fake_db["tasks"].docs.append({"_id": task_id, "title": "Landing page"})
        seed(fake_db, project_id=str(project_id), task_id=str(task_id))
        seed(fake_db, user_id="someone-else")

        entries = await AggregationService(fake_db).entries_for_user("user123")

        assert len(entries) == 1
        assert entries[0].project.name == "Website"
        assert entries[0].task.title == "Landing page"
        assert entries[0].user is None

    async def test_entries_for_project_expands_user(self, fake_db):
        from app.services.aggregation_service import AggregationService

        user_id = ObjectId()
        fake_db["users"].docs.append({"_id": user_id, "name": "Ada", "email": "ada@example.com"})
        seed(fake_db, user_id=str(user_id))

        entries = await AggregationService(fake_db).entries_for_project("project1")

        assert len(entries) == 1
        assert entries[0].user.name == "Ada"
        assert entries[0].user.email == "ada@example.com"
        assert entries[0].project is None

    async def test_entries_sorted_newest_first(self, fake_db):
        from app.services.aggregation_service import AggregationService

        older = seed(fake_db, start_time=datetime(2024, 1, 1, 8, 0))
        newer = seed(fake_db, start_time=datetime(2024, 1, 2, 8, 0))

        entries = await AggregationService(fake_db).entries_for_project("project1")

        assert [e.id for e in entries] == [str(newer["_id"]), str(older["_id"])]

    async def test_unresolvable_references_are_none(self, fake_db):
        """Non-ObjectId references are left unexpanded."""
        from app.services.aggregation_service import AggregationService

        seed(fake_db)

        entries = await AggregationService(fake_db).entries_for_user("user123")

        assert entries[0].project is None
        assert entries[0].task is None

    async def test_queries_store_with_user_filter(self):
        """Listing is a single sorted query on the time entries collection."""
        from app.services.aggregation_service import AggregationService

        mock_db = MagicMock()
        mock_entries = MagicMock()
        mock_db.__getitem__.return_value = mock_entries

        mock_cursor = MagicMock()
        mock_cursor.to_list = AsyncMock(return_value=[])
        mock_cursor.sort.return_value = mock_cursor
        mock_entries.find.return_value = mock_cursor

        entries = await AggregationService(mock_db).entries_for_user("user123")

        assert entries == []
        assert mock_entries.find.call_args[0][0] == {"user_id": "user123"}
        mock_cursor.sort.assert_called_once_with("start_time", -1)


@pytest.mark.asyncio
class TestAggregationServiceSummary:
    """Tests for per-user and per-project summaries."""

    async def test_project_summary(self, fake_db):
        from app.services.aggregation_service import AggregationService

        seed(fake_db, duration=30, task_id="t1", user_id="u1")
        seed(fake_db, duration=48, task_id="t2", user_id="u1")
        seed(fake_db, duration=12, task_id="t2", user_id="u2")
        seed(fake_db, duration=600, project_id="other")

        summary = await AggregationService(fake_db).project_summary("project1")

        assert summary.total_hours == 1.5
        assert summary.entry_count == 3
        assert summary.by_task == {"t1": 0.5, "t2": 1.0}
        assert summary.by_user == {"u1": 1.3, "u2": 0.2}
        assert summary.by_project == {}

    async def test_user_summary(self, fake_db):
        from app.services.aggregation_service import AggregationService

        seed(fake_db, duration=60, project_id="p1")
        seed(fake_db, duration=30, project_id="p2")

        summary = await AggregationService(fake_db).user_summary("user123")

        assert summary.total_hours == 1.5
        assert summary.by_project == {"p1": 1.0, "p2": 0.5}

    async def test_user_summary_project_filter(self, fake_db):
        from app.services.aggregation_service import AggregationService

        seed(fake_db, duration=60, project_id="p1")
        seed(fake_db, duration=30, project_id="p2")

        summary = await AggregationService(fake_db).user_summary("user123", project_id="p2")

        assert summary.total_hours == 0.5
        assert summary.entry_count == 1
