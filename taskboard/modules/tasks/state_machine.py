"""Pure state transition functions for task lifecycle management.

Each transition checks that the task's current status permits it, mutates the
task in place and returns the activity entries describing the change. Callers
are responsible for authorization and persistence.
"""

import logging
from datetime import datetime

from taskboard.core.errors import InvalidStateError
from taskboard.domain.task import ActivityAction, ActivityLogEntry, Task, TaskStatus
from taskboard.domain.user import Principal
from taskboard.modules.tasks.activity import build_entry


logger = logging.getLogger(__name__)


# Statuses each explicit transition may start from
SUBMITTABLE: frozenset[TaskStatus] = frozenset(
    {TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS, TaskStatus.REVIEW},
)
APPROVABLE: frozenset[TaskStatus] = SUBMITTABLE
PROGRESSABLE: frozenset[TaskStatus] = SUBMITTABLE
CHANGES_REQUESTABLE: frozenset[TaskStatus] = frozenset({TaskStatus.REVIEW})
REOPENABLE: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED})


def _require_status(task: Task, allowed: frozenset[TaskStatus], verb: str) -> None:
    if task.status not in allowed:
        msg = f"Cannot {verb}: task {task.id} is {task.status}"
        raise InvalidStateError(msg)


def _status_entry(
    *,
    action: ActivityAction,
    actor: Principal,
    now: datetime,
    old_status: TaskStatus,
    new_status: TaskStatus,
) -> ActivityLogEntry:
    return build_entry(
        action=action,
        actor=actor,
        now=now,
        changes={"from": str(old_status), "to": str(new_status)},
    )


def record_progress(task: Task, *, actor: Principal, now: datetime, progress: int) -> list[ActivityLogEntry]:
    """Set progress, starting the task when it first moves off zero."""
    _require_status(task, PROGRESSABLE, "update progress")
    entries: list[ActivityLogEntry] = []
    old_progress = task.current_progress

    if old_progress == 0 and progress > 0 and task.status == TaskStatus.NOT_STARTED:
        old_status = task.set_status(TaskStatus.IN_PROGRESS, now=now)
        entries.append(
            _status_entry(
                action=ActivityAction.STATUS_CHANGED,
                actor=actor,
                now=now,
                old_status=old_status,
                new_status=TaskStatus.IN_PROGRESS,
            )
        )
        logger.info("Task %s started by first progress update", task.id)

    task.current_progress = progress
    entries.append(
        build_entry(
            action=ActivityAction.PROGRESS_UPDATED,
            actor=actor,
            now=now,
            changes={"from": old_progress, "to": progress},
        )
    )
    return entries


def submit_for_review(task: Task, *, actor: Principal, now: datetime) -> list[ActivityLogEntry]:
    """Move a non-completed task to review."""
    _require_status(task, SUBMITTABLE, "submit for review")
    old_status = task.set_status(TaskStatus.REVIEW, now=now)
    return [
        _status_entry(
            action=ActivityAction.SUBMITTED_FOR_REVIEW,
            actor=actor,
            now=now,
            old_status=old_status,
            new_status=TaskStatus.REVIEW,
        )
    ]


def request_changes(task: Task, *, actor: Principal, now: datetime) -> list[ActivityLogEntry]:
    """Send a task under review back to in-progress."""
    _require_status(task, CHANGES_REQUESTABLE, "request changes")
    old_status = task.set_status(TaskStatus.IN_PROGRESS, now=now)
    return [
        _status_entry(
            action=ActivityAction.CHANGES_REQUESTED,
            actor=actor,
            now=now,
            old_status=old_status,
            new_status=TaskStatus.IN_PROGRESS,
        )
    ]


def approve(task: Task, *, actor: Principal, now: datetime) -> list[ActivityLogEntry]:
    """Complete any non-completed task; progress and completion date follow."""
    _require_status(task, APPROVABLE, "approve")
    old_status = task.set_status(TaskStatus.COMPLETED, now=now)
    completed_at = task.completion_date or now
    return [
        _status_entry(
            action=ActivityAction.STATUS_CHANGED,
            actor=actor,
            now=now,
            old_status=old_status,
            new_status=TaskStatus.COMPLETED,
        ),
        build_entry(
            action=ActivityAction.TASK_COMPLETED,
            actor=actor,
            now=now,
            changes={"completed_at": completed_at.isoformat()},
        ),
    ]


def reopen(task: Task, *, actor: Principal, now: datetime) -> list[ActivityLogEntry]:
    """Bring a completed task back to in-progress, clearing its completion date."""
    _require_status(task, REOPENABLE, "reopen")
    old_status = task.set_status(TaskStatus.IN_PROGRESS, now=now)
    return [
        _status_entry(
            action=ActivityAction.TASK_REOPENED,
            actor=actor,
            now=now,
            old_status=old_status,
            new_status=TaskStatus.IN_PROGRESS,
        )
    ]
