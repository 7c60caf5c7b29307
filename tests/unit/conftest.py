"""Pytest configuration and fixtures for unit tests."""

from datetime import UTC, datetime, timedelta

import pytest

from taskboard.core.config import settings
from taskboard.domain.create_models import UserCreate
from taskboard.domain.user import Principal
from taskboard.services import user_directory
from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches taskboard.core.db_client functions to use InMemoryDBClient.

    Also shortens the conflict backoff so retry tests don't sleep.
    """
    monkeypatch.setattr("taskboard.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("taskboard.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("taskboard.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("taskboard.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("taskboard.core.db_client.list_records", in_memory_db.list_records)

    monkeypatch.setattr(settings, "conflict_backoff_seconds", 0.0)

    return in_memory_db


async def _make_principal(name: str) -> Principal:
    record = await user_directory.create_user(user=UserCreate(name=name, email=f"{name.lower()}@example.com"))
    return Principal(id=record["id"], name=name)


@pytest.fixture
async def alice(patched_db) -> Principal:
    """Task creator in most tests."""
    return await _make_principal("Alice")


@pytest.fixture
async def bob(patched_db) -> Principal:
    """Assignee in most tests."""
    return await _make_principal("Bob")


@pytest.fixture
async def carol(patched_db) -> Principal:
    """Outsider with no relationship to the tasks under test."""
    return await _make_principal("Carol")


@pytest.fixture
def due_date() -> datetime:
    """A due date one week out."""
    return datetime.now(UTC) + timedelta(days=7)
