"""Persistence mapping between task records and the Task aggregate."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from taskboard.core import db_client
from taskboard.core.config import constants
from taskboard.core.errors import TaskNotFoundError
from taskboard.domain.task import Task


logger = logging.getLogger(__name__)

TASKS_COLLECTION = "tasks"

_JSON_FIELDS = ("assigned_to", "comments", "activity_logs")
_STORE_MANAGED_FIELDS = {"id", "created", "updated", "version"}


def record_to_task(record: dict[str, Any]) -> Task:
    """Decode a stored record (JSON columns included) into a Task."""
    data = dict(record)
    for field in _JSON_FIELDS:
        raw = data.get(field)
        if raw is None or raw == "":
            data[field] = []
        elif isinstance(raw, str):
            data[field] = json.loads(raw)
    return Task.model_validate(data)


def task_to_record(task: Task) -> dict[str, Any]:
    """Encode the writable part of a Task for storage."""
    return task.model_dump(mode="json", exclude=_STORE_MANAGED_FIELDS)


async def insert_task(*, task: Task) -> Task:
    """Insert a new task; id, timestamps and version are assigned by the store."""
    record = await db_client.create_record(
        collection=TASKS_COLLECTION,
        data={**task_to_record(task), "version": 1},
    )
    return record_to_task(record)


async def load_task(*, task_id: str) -> Task:
    """Load a task by ID.

    Raises:
        TaskNotFoundError: If the task does not exist
    """
    try:
        record = await db_client.get_record(collection=TASKS_COLLECTION, record_id=task_id)
    except db_client.RecordNotFoundError as e:
        raise TaskNotFoundError(f"Task not found: {task_id}") from e
    return record_to_task(record)


async def save_task(*, task: Task) -> Task:
    """Persist a loaded task if nobody else saved it in the meantime.

    Raises:
        TaskNotFoundError: If the task was deleted
        db_client.VersionConflictError: If the stored version moved on
    """
    try:
        record = await db_client.update_record(
            collection=TASKS_COLLECTION,
            record_id=task.id,
            data=task_to_record(task),
            expected_version=task.version,
        )
    except db_client.RecordNotFoundError as e:
        raise TaskNotFoundError(f"Task not found: {task.id}") from e
    return record_to_task(record)


async def remove_task(*, task_id: str) -> None:
    """Hard-delete a task with its comments and activity logs."""
    try:
        await db_client.delete_record(collection=TASKS_COLLECTION, record_id=task_id)
    except db_client.RecordNotFoundError as e:
        raise TaskNotFoundError(f"Task not found: {task_id}") from e


async def iter_tasks(*, filter_query: str = "", chunk_size: int | None = None) -> AsyncIterator[Task]:
    """Yield every task matching the filter, fetching one page at a time."""
    per_page = chunk_size or constants.QUERY_CHUNK_SIZE
    page = 1
    while True:
        records = await db_client.list_records(
            collection=TASKS_COLLECTION,
            page=page,
            per_page=per_page,
            filter_query=filter_query,
            sort="id",
        )
        for record in records:
            yield record_to_task(record)
        if len(records) < per_page:
            return
        page += 1
