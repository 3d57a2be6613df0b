"""Pytest configuration and fixtures."""
import asyncio
import copy
import os
from datetime import datetime, timedelta

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from bson import ObjectId
from httpx import AsyncClient, ASGITransport
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.main import app
from app.config import settings
from app.database import database, ensure_indexes, get_database
from app.utils.auth import create_access_token


class FakeClock:
    """Controllable replacement for app.utils.clock.utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction):
        self.docs.sort(key=lambda doc: doc.get(key) or datetime.min, reverse=direction < 0)
        return self

    async def to_list(self, length=None):
        return self.docs


class FakeCollection:
    """
    Minimal in-memory stand-in for a Motor collection.

    Upserts yield to the event loop between matching and inserting, so
    concurrent calls interleave the way separate requests would. With
    ``unique_open_triple`` set it enforces the open-timer unique index.
    """

    def __init__(self, unique_open_triple: bool = False):
        self.docs: list[dict] = []
        self.unique_open_triple = unique_open_triple

    @staticmethod
    def _matches(doc: dict, query: dict) -> bool:
        for key, expected in query.items():
            if key == "$or":
                if not any(FakeCollection._matches(doc, clause) for clause in expected):
                    return False
                continue
            value = doc.get(key)
            if isinstance(expected, dict):
                if "$exists" in expected and (key in doc) != expected["$exists"]:
                    return False
                if "$ne" in expected and value == expected["$ne"]:
                    return False
                if "$in" in expected and value not in expected["$in"]:
                    return False
            elif value != expected:
                return False
        return True

    def _first(self, query: dict):
        return next((doc for doc in self.docs if self._matches(doc, query)), None)

    @staticmethod
    def _apply(doc: dict, update: dict, inserting: bool = False) -> None:
        doc.update(update.get("$set", {}))
        if inserting:
            doc.update(update.get("$setOnInsert", {}))
        for key, amount in update.get("$inc", {}).items():
            doc[key] = (doc.get(key) or 0) + amount

    def _check_unique(self, new_doc: dict) -> None:
        if not self.unique_open_triple or new_doc.get("end_time") is not None:
            return
        triple = ("user_id", "project_id", "task_id")
        for doc in self.docs:
            if doc.get("end_time") is None and all(doc.get(k) == new_doc.get(k) for k in triple):
                raise DuplicateKeyError("E11000 duplicate key error")

    async def find_one(self, query: dict, projection=None):
        await asyncio.sleep(0)
        doc = self._first(query)
        return copy.deepcopy(doc) if doc else None

    async def find_one_and_update(self, query: dict, update: dict, upsert: bool = False, return_document=None):
        doc = self._first(query)
        if doc is not None:
            self._apply(doc, update)
            return copy.deepcopy(doc)
        if not upsert:
            return None

        await asyncio.sleep(0)
        new_doc = {key: value for key, value in query.items() if not isinstance(value, dict)}
        new_doc["_id"] = ObjectId()
        self._apply(new_doc, update, inserting=True)
        self._check_unique(new_doc)
        self.docs.append(new_doc)
        return copy.deepcopy(new_doc)

    async def insert_one(self, doc: dict):
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", ObjectId())
        self._check_unique(stored)
        self.docs.append(stored)
        return type("InsertResult", (), {"inserted_id": stored["_id"]})()

    async def update_one(self, query: dict, update: dict):
        doc = self._first(query)
        if doc is not None:
            self._apply(doc, update)
        return type("UpdateResult", (), {"modified_count": int(doc is not None)})()

    async def delete_one(self, query: dict):
        doc = self._first(query)
        if doc is not None:
            self.docs.remove(doc)
        return type("DeleteResult", (), {"deleted_count": int(doc is not None)})()

    def find(self, query: dict, projection=None):
        return FakeCursor([copy.deepcopy(doc) for doc in self.docs if self._matches(doc, query)])


class FakeDatabase:
    """Dict-like database handing out FakeCollections."""

    def __init__(self):
        self.collections = {"time_entries": FakeCollection(unique_open_triple=True)}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection())


@pytest.fixture
def clock():
    """Clock frozen at 2024-01-01 09:00 UTC."""
    return FakeClock(datetime(2024, 1, 1, 9, 0, 0))


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def auth_headers():
    token = create_access_token(user_id="user123")
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def fake_client(fake_db, clock, monkeypatch):
    """
    HTTP client for the app backed by the in-memory store.

    The services' clock is replaced with the frozen test clock.
    """
    monkeypatch.setattr("app.services.timer_service.utcnow", clock)
    app.dependency_overrides[get_database] = lambda: fake_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def app_client():
    """
    Create a test client with a clean test database.

    This fixture:
    - Creates a test database connection (skips if MongoDB is unreachable)
    - Yields an async HTTP client for testing
    - Cleans up the test database after each test
    """
    # Create test database client
    test_client = AsyncIOMotorClient(settings.mongodb_url, serverSelectionTimeoutMS=1000)
    try:
        await test_client.admin.command("ping")
    except PyMongoError:
        test_client.close()
        pytest.skip("MongoDB is not reachable")

    test_db_name = f"{settings.mongodb_db_name}_test"
    test_db = test_client[test_db_name]
    await ensure_indexes(test_db)

    # Override the database dependency
    original_db = database.db
    database.db = test_db

    # Create HTTP client
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    # Cleanup: drop test database
    await test_client.drop_database(test_db_name)

    # Restore original database
    database.db = original_db
    test_client.close()
