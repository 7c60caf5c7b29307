"""Task domain models and enums."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskboard.core.config import Constants


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RelatedTo(StrEnum):
    """Organizational area a task belongs to."""

    LEARNING_AND_DEVELOPMENT = "learning-and-development"
    RESEARCH_AND_DEVELOPMENT = "research-and-development"
    FINANCE = "finance"
    ADMINISTRATION = "administration"
    TECH = "tech"
    MARKETING = "marketing"
    OTHERS = "others"


class ActivityAction(StrEnum):
    """Kinds of activity log entries."""

    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    TASK_REASSIGNED = "task_reassigned"
    TASK_UNASSIGNED = "task_unassigned"
    STATUS_CHANGED = "status_changed"
    SUBMITTED_FOR_REVIEW = "submitted_for_review"
    CHANGES_REQUESTED = "changes_requested"
    TASK_REOPENED = "task_reopened"
    PRIORITY_CHANGED = "priority_changed"
    PROGRESS_UPDATED = "progress_updated"
    DUE_DATE_CHANGED = "due_date_changed"
    TASK_COMPLETED = "task_completed"
    COMMENT_ADDED = "comment_added"
    TASK_UPDATED = "task_updated"


# Fields a general detail edit may touch. Everything else changes only through
# a dedicated workflow operation.
MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"title", "description", "notes", "related_to", "priority", "due_date"},
)


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Comment(BaseModel):
    """Comment left on a task by its creator or an assignee."""

    id: str = Field(..., description="Comment ID, unique within the task")
    author_id: str = Field(..., description="User ID of the comment author")
    text: str = Field(..., min_length=1, max_length=Constants.MAX_COMMENT_LENGTH)
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ActivityLogEntry(BaseModel):
    """One immutable audit record, paired with its rendered message."""

    action: str = Field(..., description="Kind of change (an ActivityAction value)")
    actor_id: str = Field(..., description="User ID of the principal who made the change")
    changes: dict[str, Any] = Field(default_factory=dict, description="Structured change payload")
    message: str = Field(..., description="Human-readable description of the change")
    timestamp: datetime = Field(default_factory=utcnow, description="When the change was accepted")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Task(BaseModel):
    """Task aggregate with its comments and activity trail."""

    id: str = Field(..., description="Unique task ID from database")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    version: int = Field(default=1, description="Optimistic concurrency version")
    title: str = Field(..., min_length=1, max_length=Constants.MAX_TITLE_LENGTH)
    description: str | None = Field(default=None, max_length=Constants.MAX_DESCRIPTION_LENGTH)
    notes: str | None = Field(default=None, max_length=Constants.MAX_NOTES_LENGTH)
    related_to: RelatedTo
    created_by: str = Field(..., description="User ID of the creator")
    assigned_to: list[str] = Field(default_factory=list, description="User IDs of assignees")
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.NOT_STARTED
    current_progress: int = Field(default=0, ge=Constants.MIN_PROGRESS, le=Constants.MAX_PROGRESS)
    due_date: datetime
    completion_date: datetime | None = None
    comments: list[Comment] = Field(default_factory=list)
    activity_logs: list[ActivityLogEntry] = Field(default_factory=list)

    @field_validator("due_date", "completion_date")
    @classmethod
    def normalize_dates(cls, v: datetime | None) -> datetime | None:
        """Store every date as aware UTC."""
        return ensure_utc(v)

    def is_creator(self, user_id: str) -> bool:
        return self.created_by == user_id

    def is_assignee(self, user_id: str) -> bool:
        return user_id in self.assigned_to

    def is_participant(self, user_id: str) -> bool:
        """Return True if the user created the task or is assigned to it."""
        return self.is_creator(user_id) or self.is_assignee(user_id)

    def set_status(self, new_status: TaskStatus, *, now: datetime) -> TaskStatus:
        """Change status, keeping progress and completion date consistent.

        Entering ``completed`` forces progress to 100 and stamps the completion
        date if it is unset. Leaving ``completed`` clears the completion date.

        Returns:
            The previous status
        """
        old_status = self.status
        self.status = new_status

        if new_status == TaskStatus.COMPLETED:
            if self.completion_date is None:
                self.completion_date = now
            self.current_progress = Constants.MAX_PROGRESS
        elif old_status == TaskStatus.COMPLETED:
            self.completion_date = None

        return old_status

    def append_activity(self, entry: ActivityLogEntry) -> None:
        self.activity_logs.append(entry)

    def find_comment(self, comment_id: str) -> Comment | None:
        return next((c for c in self.comments if c.id == comment_id), None)

    def is_overdue(self, now: datetime) -> bool:
        return self.status != TaskStatus.COMPLETED and self.due_date < now
