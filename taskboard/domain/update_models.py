"""Update models for task edits and workflow payloads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from taskboard.core.config import Constants
from taskboard.domain.task import RelatedTo, TaskPriority, ensure_utc


class TaskUpdate(BaseModel):
    """Detail edit restricted to the mutable-field allow-list."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = Field(default=None, max_length=Constants.MAX_DESCRIPTION_LENGTH)
    notes: str | None = Field(default=None, max_length=Constants.MAX_NOTES_LENGTH)
    related_to: RelatedTo | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str | None) -> str | None:
        """Strip the title and enforce 1..100 characters when given."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        if len(v) > Constants.MAX_TITLE_LENGTH:
            raise ValueError(f"Title cannot exceed {Constants.MAX_TITLE_LENGTH} characters")
        return v

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)


class ProgressUpdate(BaseModel):
    """Update payload for task progress."""

    current_progress: StrictInt


class AssignmentUpdate(BaseModel):
    """Update payload replacing the assignee set."""

    assigned_to: list[str]


class CommentCreate(BaseModel):
    """Payload for a new comment."""

    comment: str


class ChangesRequest(BaseModel):
    """Payload for sending a task back from review."""

    feedback: str | None = None
