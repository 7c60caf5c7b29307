"""Pydantic models for creating records in database."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from taskboard.core.config import Constants
from taskboard.domain.task import RelatedTo, TaskPriority, ensure_utc


class TaskCreate(BaseModel):
    """Validated input for a new task."""

    title: str = Field(..., description="Task title")
    related_to: RelatedTo = Field(..., description="Organizational area")
    due_date: datetime = Field(..., description="When the task is due")
    description: str | None = Field(default=None, max_length=Constants.MAX_DESCRIPTION_LENGTH)
    notes: str | None = Field(default=None, max_length=Constants.MAX_NOTES_LENGTH)
    assigned_to: list[str] = Field(default_factory=list, description="User IDs to assign")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Strip the title and enforce 1..100 characters."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        if len(v) > Constants.MAX_TITLE_LENGTH:
            raise ValueError(f"Title cannot exceed {Constants.MAX_TITLE_LENGTH} characters")
        return v

    @field_validator("description", "notes")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class UserCreate(BaseModel):
    """Pydantic model for creating a user record."""

    name: str = Field(..., min_length=1, description="Display name of the user")
    email: str | None = Field(default=None, description="Email address")
    role: str = Field(default="member", description="User role")
