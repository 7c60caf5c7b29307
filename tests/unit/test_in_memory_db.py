"""Tests for InMemoryDBClient implementation."""

import pytest

from taskboard.core.db_client import DatabaseError, RecordNotFoundError, VersionConflictError


@pytest.mark.unit
class TestInMemoryDBClient:
    """Test suite for InMemoryDBClient."""

    async def test_create_record(self, in_memory_db):
        """Test creating a record."""
        record = await in_memory_db.create_record(collection="users", data={"name": "Test User"})

        assert record["id"] is not None
        assert record["name"] == "Test User"
        assert "created" in record
        assert "updated" in record

    async def test_get_missing_record(self, in_memory_db):
        """Test getting a record that does not exist."""
        with pytest.raises(RecordNotFoundError):
            await in_memory_db.get_record(collection="users", record_id="1")

    async def test_versioned_update(self, in_memory_db):
        """Test that a stale expected_version is rejected."""
        record = await in_memory_db.create_record(collection="tasks", data={"title": "A", "version": 1})

        updated = await in_memory_db.update_record(
            collection="tasks", record_id=record["id"], data={"title": "B"}, expected_version=1
        )
        assert updated["version"] == 2

        with pytest.raises(VersionConflictError):
            await in_memory_db.update_record(
                collection="tasks", record_id=record["id"], data={"title": "C"}, expected_version=1
            )
        assert (await in_memory_db.get_record(collection="tasks", record_id=record["id"]))["title"] == "B"

    async def test_scheduled_conflict(self, in_memory_db):
        """Test that pending_conflicts makes the next versioned update lose."""
        record = await in_memory_db.create_record(collection="tasks", data={"title": "A", "version": 1})
        in_memory_db.pending_conflicts = 1

        with pytest.raises(VersionConflictError):
            await in_memory_db.update_record(
                collection="tasks", record_id=record["id"], data={"title": "B"}, expected_version=1
            )
        assert in_memory_db.pending_conflicts == 0

    async def test_filter_and_sort(self, in_memory_db):
        """Test filtering with = / != / && and numeric id sort."""
        for status in ("review", "completed", "review"):
            await in_memory_db.create_record(collection="tasks", data={"status": status, "title": f"T {status}"})

        review = await in_memory_db.list_records(collection="tasks", filter_query='status = "review"', sort="-id")
        assert [r["status"] for r in review] == ["review", "review"]
        assert int(review[0]["id"]) > int(review[1]["id"])

        open_tasks = await in_memory_db.list_records(collection="tasks", filter_query='status != "completed"')
        assert len(open_tasks) == 2

        both = await in_memory_db.list_records(
            collection="tasks", filter_query='status = "review" && title = "T review"'
        )
        assert len(both) == 2

    async def test_invalid_filter(self, in_memory_db):
        """Test that a filter without an operator is rejected."""
        await in_memory_db.create_record(collection="tasks", data={"title": "A"})
        with pytest.raises(DatabaseError):
            await in_memory_db.list_records(collection="tasks", filter_query="title")
