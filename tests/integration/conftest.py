"""Pytest configuration and fixtures for integration tests."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from taskboard.core import db_client
from taskboard.core.config import settings


@pytest.fixture
async def sqlite_db(tmp_path: Path, monkeypatch) -> AsyncIterator[str]:
    """Point the client at a fresh SQLite file with the full schema applied."""
    db_path = str(tmp_path / "taskboard-test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", db_path)
    monkeypatch.setattr(settings, "conflict_backoff_seconds", 0.0)

    await db_client.init_db()
    yield db_path
    await db_client.close_connection()
