"""
Shared pytest fixtures.

The MongoDB database is replaced by mongomock, which honours unique
indexes and $regex queries, so no server is needed.
"""

import os

# Keep tests away from any real database configured in .env
os.environ["DATABASE_URL"] = ""
os.environ["DATABASE_NAME"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

import database


@pytest.fixture
def mock_db(monkeypatch):
    """A fresh in-memory database with the service's unique indexes."""
    db = mongomock.MongoClient()["test_samples"]
    database.ensure_indexes(db)
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture
def no_db(monkeypatch):
    monkeypatch.setattr(database, "db", None)


@pytest.fixture
def now_2024():
    return datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def client(mock_db):
    from main import app

    return TestClient(app)


@pytest.fixture
def seed_samples(mock_db):
    """Seed the samples collection with bare records."""

    def seed(*sample_ids):
        for sample_id in sample_ids:
            doc = {"sample_id": sample_id, "type": "Soil"}
            suffix = sample_id.rsplit("-", 1)[-1]
            if suffix.isdigit():
                doc["seq"] = int(suffix)
            mock_db["samples"].insert_one(doc)

    return seed
