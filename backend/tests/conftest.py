"""
Pytest configuration and shared test helpers for backend tests.

FakeDatabase is an in-memory stand-in for the motor database with just the
collection operations the services use, so no MongoDB is needed.
"""
import copy
import itertools
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

# Skip server startup (MongoDB, seeding) when running under pytest.
os.environ.setdefault("PYTEST_RUNNING", "1")

backend_root = Path(__file__).resolve().parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

import pytest
from fastapi.testclient import TestClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _matches(doc: dict, query: dict) -> bool:
    for key, condition in query.items():
        if isinstance(condition, dict) and "$exists" in condition:
            if (key in doc) != bool(condition["$exists"]):
                return False
        elif key not in doc or doc[key] != condition:
            return False
    return True


def _project(doc: dict, projection) -> dict:
    result = copy.deepcopy(doc)
    if projection and projection.get("_id") == 0:
        result.pop("_id", None)
    return result


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        self._docs = sorted(self._docs, key=lambda d: d.get(key), reverse=direction == -1)
        return self

    async def to_list(self, length=None):
        return self._docs if length is None else self._docs[:length]


class FakeCollection:
    """Dict-backed collection supporting the subset of motor calls used by the services."""

    def __init__(self, unique_keys=()):
        self.docs = []
        self.unique_keys = tuple(unique_keys)
        self._ids = itertools.count(1)

    def _check_unique(self, doc):
        for key in self.unique_keys:
            if key in doc and any(existing.get(key) == doc[key] for existing in self.docs):
                raise DuplicateKeyError(f"duplicate key {key}={doc[key]!r}")

    async def find_one(self, query, projection=None):
        for doc in self.docs:
            if _matches(doc, query):
                return _project(doc, projection)
        return None

    def find(self, query=None, projection=None):
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def insert_one(self, doc):
        self._check_unique(doc)
        stored = copy.deepcopy(doc)
        stored.setdefault("_id", next(self._ids))
        self.docs.append(stored)
        return SimpleNamespace(inserted_id=stored["_id"])

    async def find_one_and_update(self, query, update, projection=None, return_document=ReturnDocument.BEFORE):
        for doc in self.docs:
            if _matches(doc, query):
                before = _project(doc, projection)
                self._apply(doc, update)
                return _project(doc, projection) if return_document == ReturnDocument.AFTER else before
        return None

    async def update_one(self, query, update, upsert=False):
        for doc in self.docs:
            if _matches(doc, query):
                self._apply(doc, update)
                return SimpleNamespace(matched_count=1, upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, upserted_id=None)
        new_doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
        new_doc.update(copy.deepcopy(update.get("$setOnInsert", {})))
        self._apply(new_doc, {k: v for k, v in update.items() if k != "$setOnInsert"})
        result = await self.insert_one(new_doc)
        return SimpleNamespace(matched_count=0, upserted_id=result.inserted_id)

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    @staticmethod
    def _apply(doc, update):
        for key, value in update.get("$set", {}).items():
            doc[key] = copy.deepcopy(value)
        for key, spec in update.get("$push", {}).items():
            values = list(doc.get(key) or [])
            if isinstance(spec, dict) and "$each" in spec:
                values.extend(spec["$each"])
                if "$slice" in spec:
                    limit = spec["$slice"]
                    values = values[limit:] if limit < 0 else values[:limit]
            else:
                values.append(spec)
            doc[key] = values


class FailingCollection:
    """Every call fails as if the server were unreachable."""

    def _fail(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("connection refused")

    async def find_one(self, *args, **kwargs):
        self._fail()

    async def insert_one(self, *args, **kwargs):
        self._fail()

    async def find_one_and_update(self, *args, **kwargs):
        self._fail()

    async def update_one(self, *args, **kwargs):
        self._fail()

    def find(self, *args, **kwargs):
        self._fail()


class FakeDatabase:
    def __init__(self):
        self.access_grants = FakeCollection(unique_keys=("identity",))
        self.macro_data = FakeCollection()
        self.message_logs = FakeCollection(unique_keys=("message_id",))


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def failing_db():
    db = FakeDatabase()
    db.access_grants = FailingCollection()
    db.macro_data = FailingCollection()
    db.message_logs = FailingCollection()
    return db


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def app_env(monkeypatch):
    monkeypatch.setenv("PUBLIC_APP_URL", "https://finapp.example.com")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.delenv("POSTMARK_SERVER_TOKEN", raising=False)


@pytest.fixture
def client(fake_db, app_env):
    """TestClient for server:app with services built around the in-memory database."""
    from server import app, configure_services

    configure_services(app, fake_db)
    return TestClient(app)
