"""Domain models and DTOs."""

from taskboard.domain.create_models import TaskCreate, UserCreate
from taskboard.domain.task import (
    MUTABLE_FIELDS,
    ActivityAction,
    ActivityLogEntry,
    Comment,
    RelatedTo,
    Task,
    TaskPriority,
    TaskStatus,
)
from taskboard.domain.update_models import TaskUpdate
from taskboard.domain.user import Principal, User, UserRef, UserRole


__all__ = [
    "MUTABLE_FIELDS",
    "ActivityAction",
    "ActivityLogEntry",
    "Comment",
    "Principal",
    "RelatedTo",
    "Task",
    "TaskCreate",
    "TaskPriority",
    "TaskStatus",
    "TaskUpdate",
    "User",
    "UserCreate",
    "UserRef",
    "UserRole",
]
