"""Pydantic models for service layer return types.

These models give the query and analytics layers typed return values instead
of loose dictionaries.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taskboard.domain.task import Task


class TaskBoard(BaseModel):
    """All tasks visible to a user, split into status columns."""

    not_started: list[Task] = Field(default_factory=list)
    in_progress: list[Task] = Field(default_factory=list)
    review: list[Task] = Field(default_factory=list)
    completed: list[Task] = Field(default_factory=list)


class ActivityFeedEntry(BaseModel):
    """An activity log entry flattened out of its task."""

    task_id: str
    task_title: str
    action: str
    actor_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    message: str
    timestamp: datetime


class DashboardStats(BaseModel):
    """Summary counts over the tasks a user can see."""

    total: int
    not_started: int
    in_progress: int
    review: int
    completed: int
    overdue: int
    by_priority: dict[str, int]
    completion_rate: float
    average_completion_days: int | None = None
