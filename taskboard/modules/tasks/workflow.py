"""Workflow engine: authorized, audited operations on tasks.

Every mutating operation follows the same cycle: load the task, check the
actor's relationship to it, check the status allows the operation, mutate,
append activity entries, then persist with an optimistic version check. The
task and its new log entries are written by one UPDATE, so either both land
or neither does. A lost version race re-runs the whole cycle against the
fresh record; after ``settings.conflict_max_retries`` attempts ConflictError
is raised.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from taskboard.core.config import constants, settings
from taskboard.core.db_client import VersionConflictError
from taskboard.core.errors import (
    CommentNotFoundError,
    ConflictError,
    ForbiddenError,
    OperationTimeoutError,
    TaskValidationError,
    UserNotFoundError,
)
from taskboard.core.logging import log_task_event, span
from taskboard.domain.create_models import TaskCreate
from taskboard.domain.task import (
    MUTABLE_FIELDS,
    ActivityAction,
    ActivityLogEntry,
    Comment,
    Task,
    utcnow,
)
from taskboard.domain.update_models import TaskUpdate
from taskboard.domain.user import Principal, UserRef
from taskboard.modules.tasks import repository, state_machine
from taskboard.modules.tasks.activity import build_entry
from taskboard.services import user_directory


logger = logging.getLogger(__name__)

# Returns True when the task changed and must be persisted
Mutation = Callable[[Task, datetime], bool]

_NON_NULLABLE_UPDATE_FIELDS = ("title", "related_to", "priority", "due_date")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _validation_message(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


def _require_creator(task: Task, actor: Principal, verb: str) -> None:
    if not task.is_creator(actor.id):
        raise ForbiddenError(f"Only the task creator can {verb}")


def _require_assignee(task: Task, actor: Principal, verb: str) -> None:
    if not task.is_assignee(actor.id):
        raise ForbiddenError(f"Only an assignee can {verb}")


def _require_participant(task: Task, actor: Principal, verb: str) -> None:
    if not task.is_participant(actor.id):
        raise ForbiddenError(f"Only the task creator or an assignee can {verb}")


def _clean_comment(text: str | None) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise TaskValidationError("Comment cannot be empty")
    if len(cleaned) > constants.MAX_COMMENT_LENGTH:
        raise TaskValidationError(f"Comment cannot exceed {constants.MAX_COMMENT_LENGTH} characters")
    return cleaned


def _unique_ids(user_ids: list[str]) -> list[str]:
    """Collapse duplicate IDs, keeping first occurrence order."""
    return list(dict.fromkeys(str(user_id) for user_id in user_ids))


def _assignment_changes(refs: list[UserRef]) -> dict[str, Any]:
    return {
        "assigned_to": [ref.model_dump() for ref in refs],
        "assigned_names": ", ".join(ref.name for ref in refs),
    }


@asynccontextmanager
async def _deadline(operation: str) -> AsyncIterator[None]:
    """Fail the whole operation if it outlives its deadline."""
    try:
        async with asyncio.timeout(settings.operation_timeout_seconds):
            yield
    except TimeoutError as e:
        if isinstance(e, OperationTimeoutError):
            raise
        msg = f"{operation} did not complete within {settings.operation_timeout_seconds}s"
        raise OperationTimeoutError(msg) from e


async def _apply(*, task_id: str, actor: Principal, operation: str, mutate: Mutation) -> Task:
    """Run load-check-mutate-persist for one task, retrying lost version races."""
    max_attempts = max(1, settings.conflict_max_retries)

    for attempt in range(1, max_attempts + 1):
        task = await repository.load_task(task_id=task_id)
        now = utcnow()
        if not mutate(task, now):
            return task

        try:
            saved = await repository.save_task(task=task)
        except VersionConflictError:
            logger.warning(
                "Version conflict on task %s during %s (attempt %d/%d)",
                task_id,
                operation,
                attempt,
                max_attempts,
            )
            if attempt < max_attempts:
                await asyncio.sleep(settings.conflict_backoff_seconds * (2 ** (attempt - 1)))
            continue

        log_task_event(logger, f"Task {operation}", task_id=task_id, actor_id=actor.id)
        return saved

    msg = f"Task {task_id} kept changing concurrently; {operation} abandoned after {max_attempts} attempts"
    raise ConflictError(msg)


def _append(task: Task, entries: list[ActivityLogEntry]) -> None:
    for entry in entries:
        task.append_activity(entry)


# ---------------------------------------------------------------------------
# Creation and deletion
# ---------------------------------------------------------------------------


async def create_task(
    *,
    actor: Principal,
    title: str,
    related_to: str,
    due_date: datetime | str,
    description: str | None = None,
    assigned_to: list[str] | None = None,
    priority: str | None = None,
    notes: str | None = None,
) -> Task:
    """Create a task owned by the actor.

    Any authenticated principal may create a task. A ``task_created`` entry is
    always logged; a ``task_assigned`` entry follows when assignees are given.

    Raises:
        TaskValidationError: If title, related_to or due_date are missing or invalid
        UserNotFoundError: If an assignee does not exist
    """
    with span("workflow.create_task"):
        fields: dict[str, Any] = {
            "title": title,
            "related_to": related_to,
            "due_date": due_date,
            "description": description,
            "notes": notes,
            "assigned_to": _unique_ids(assigned_to or []),
        }
        if priority is not None:
            fields["priority"] = priority
        try:
            payload = TaskCreate.model_validate(fields)
        except ValidationError as e:
            raise TaskValidationError(_validation_message(e)) from e

        async with _deadline("create_task"):
            refs = await user_directory.lookup_names(user_ids=payload.assigned_to) if payload.assigned_to else []

            now = utcnow()
            draft = Task(
                id="",
                created="",
                updated="",
                created_by=actor.id,
                title=payload.title,
                description=payload.description,
                notes=payload.notes,
                related_to=payload.related_to,
                assigned_to=payload.assigned_to,
                priority=payload.priority,
                due_date=payload.due_date,
            )
            draft.append_activity(build_entry(action=ActivityAction.TASK_CREATED, actor=actor, now=now))
            if refs:
                draft.append_activity(
                    build_entry(
                        action=ActivityAction.TASK_ASSIGNED,
                        actor=actor,
                        now=now,
                        changes=_assignment_changes(refs),
                    )
                )

            task = await repository.insert_task(task=draft)

        logger.info(
            "Created task '%s' (assigned to: %s)",
            task.title,
            ", ".join(task.assigned_to) or "nobody",
            extra={"task_id": task.id, "actor_id": actor.id},
        )
        return task


async def delete_task(*, actor: Principal, task_id: str) -> None:
    """Hard-delete a task with its comments and activity logs (creator only)."""
    with span("workflow.delete_task"):
        async with _deadline("delete_task"):
            task = await repository.load_task(task_id=task_id)
            _require_creator(task, actor, "delete this task")
            await repository.remove_task(task_id=task_id)

        log_task_event(logger, "Task deleted", task_id=task_id, actor_id=actor.id)


# ---------------------------------------------------------------------------
# Progress and status workflow
# ---------------------------------------------------------------------------


async def update_progress(*, actor: Principal, task_id: str, progress: int) -> Task:
    """Record progress; the first move off zero also starts a not-started task.

    Raises:
        TaskValidationError: If progress is not an integer in 0..100
        ForbiddenError: If the actor is neither creator nor assignee
        InvalidStateError: If the task is completed; reopen it first
    """
    with span("workflow.update_progress"):
        if (
            isinstance(progress, bool)
            or not isinstance(progress, int)
            or not constants.MIN_PROGRESS <= progress <= constants.MAX_PROGRESS
        ):
            raise TaskValidationError(
                f"Progress must be between {constants.MIN_PROGRESS} and {constants.MAX_PROGRESS}"
            )

        def mutate(task: Task, now: datetime) -> bool:
            _require_participant(task, actor, "update progress")
            _append(task, state_machine.record_progress(task, actor=actor, now=now, progress=progress))
            return True

        async with _deadline("update_progress"):
            return await _apply(task_id=task_id, actor=actor, operation="progress updated", mutate=mutate)


async def submit_for_review(*, actor: Principal, task_id: str) -> Task:
    """Hand a task to its creator for review (assignees only).

    Raises:
        ForbiddenError: If the actor is not an assignee
        InvalidStateError: If the task is already completed
    """
    with span("workflow.submit_for_review"):

        def mutate(task: Task, now: datetime) -> bool:
            _require_assignee(task, actor, "submit this task for review")
            _append(task, state_machine.submit_for_review(task, actor=actor, now=now))
            return True

        async with _deadline("submit_for_review"):
            return await _apply(task_id=task_id, actor=actor, operation="submitted for review", mutate=mutate)


async def request_changes(*, actor: Principal, task_id: str, feedback: str | None = None) -> Task:
    """Send a task under review back to in-progress (creator only).

    Non-blank feedback is stored as a comment authored by the creator.

    Raises:
        ForbiddenError: If the actor is not the creator
        InvalidStateError: If the task is not in review
        TaskValidationError: If the feedback exceeds the comment length limit
    """
    with span("workflow.request_changes"):
        comment_text = _clean_comment(feedback) if feedback and feedback.strip() else None

        def mutate(task: Task, now: datetime) -> bool:
            _require_creator(task, actor, "request changes")
            entries = state_machine.request_changes(task, actor=actor, now=now)
            if comment_text:
                task.comments.append(
                    Comment(id=uuid.uuid4().hex, author_id=actor.id, text=comment_text, created_at=now)
                )
            _append(task, entries)
            return True

        async with _deadline("request_changes"):
            return await _apply(task_id=task_id, actor=actor, operation="changes requested", mutate=mutate)


async def approve_task(*, actor: Principal, task_id: str) -> Task:
    """Complete a task (creator only); progress becomes 100 and completion is stamped.

    Approval is allowed from any non-completed status, not only from review.

    Raises:
        ForbiddenError: If the actor is not the creator
        InvalidStateError: If the task is already completed
    """
    with span("workflow.approve_task"):

        def mutate(task: Task, now: datetime) -> bool:
            _require_creator(task, actor, "approve this task")
            _append(task, state_machine.approve(task, actor=actor, now=now))
            return True

        async with _deadline("approve_task"):
            return await _apply(task_id=task_id, actor=actor, operation="approved", mutate=mutate)


async def reopen_task(*, actor: Principal, task_id: str) -> Task:
    """Reopen a completed task (creator only); it returns to in-progress.

    Raises:
        ForbiddenError: If the actor is not the creator
        InvalidStateError: If the task is not completed
    """
    with span("workflow.reopen_task"):

        def mutate(task: Task, now: datetime) -> bool:
            _require_creator(task, actor, "reopen this task")
            _append(task, state_machine.reopen(task, actor=actor, now=now))
            return True

        async with _deadline("reopen_task"):
            return await _apply(task_id=task_id, actor=actor, operation="reopened", mutate=mutate)


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


async def _replace_assignees(
    *,
    actor: Principal,
    task_id: str,
    assignee_ids: list[str],
    action: ActivityAction,
    operation: str,
) -> Task:
    user_ids = _unique_ids(assignee_ids or [])
    if not user_ids:
        raise TaskValidationError("Please provide users to assign")

    refs = await user_directory.lookup_names(user_ids=user_ids)
    changes = _assignment_changes(refs)

    def mutate(task: Task, now: datetime) -> bool:
        _require_creator(task, actor, "change assignees")
        task.assigned_to = list(user_ids)
        task.append_activity(build_entry(action=action, actor=actor, now=now, changes=changes))
        return True

    return await _apply(task_id=task_id, actor=actor, operation=operation, mutate=mutate)


async def assign_task(*, actor: Principal, task_id: str, assignee_ids: list[str]) -> Task:
    """Replace the assignee set (creator only) and log ``task_assigned``.

    Raises:
        TaskValidationError: If no assignees are given
        UserNotFoundError: If an assignee does not exist
        ForbiddenError: If the actor is not the creator
    """
    with span("workflow.assign_task"):
        async with _deadline("assign_task"):
            return await _replace_assignees(
                actor=actor,
                task_id=task_id,
                assignee_ids=assignee_ids,
                action=ActivityAction.TASK_ASSIGNED,
                operation="assigned",
            )


async def reassign_task(*, actor: Principal, task_id: str, assignee_ids: list[str]) -> Task:
    """Replace the assignee set (creator only) and log ``task_reassigned``."""
    with span("workflow.reassign_task"):
        async with _deadline("reassign_task"):
            return await _replace_assignees(
                actor=actor,
                task_id=task_id,
                assignee_ids=assignee_ids,
                action=ActivityAction.TASK_REASSIGNED,
                operation="reassigned",
            )


async def unassign_user(*, actor: Principal, task_id: str, user_id: str) -> Task:
    """Remove one assignee (creator only).

    Raises:
        TaskValidationError: If the user is not assigned to the task
        ForbiddenError: If the actor is not the creator
    """
    with span("workflow.unassign_user"):
        async with _deadline("unassign_user"):
            try:
                user_name = (await user_directory.get_user(user_id=user_id)).name
            except UserNotFoundError:
                # Former members can still be removed; log them by ID
                logger.warning("Unassigning unknown user %s from task %s", user_id, task_id)
                user_name = user_id

            def mutate(task: Task, now: datetime) -> bool:
                _require_creator(task, actor, "change assignees")
                if not task.is_assignee(user_id):
                    raise TaskValidationError(f"User {user_id} is not assigned to task {task.id}")
                task.assigned_to = [assignee for assignee in task.assigned_to if assignee != user_id]
                task.append_activity(
                    build_entry(
                        action=ActivityAction.TASK_UNASSIGNED,
                        actor=actor,
                        now=now,
                        changes={"user_id": user_id, "user_name": user_name},
                    )
                )
                return True

            return await _apply(task_id=task_id, actor=actor, operation="unassigned", mutate=mutate)


# ---------------------------------------------------------------------------
# Detail edits
# ---------------------------------------------------------------------------


async def update_task(*, actor: Principal, task_id: str, changes: dict[str, Any]) -> Task:
    """Edit allow-listed task details (creator only).

    Priority and due-date changes get their own log entries; edits to any
    other allowed field are summarised in one ``task_updated`` entry. A payload
    that changes nothing is not persisted.

    Raises:
        TaskValidationError: If the payload names a protected field or an invalid value
        ForbiddenError: If the actor is not the creator
    """
    with span("workflow.update_task"):
        rejected = sorted(set(changes) - MUTABLE_FIELDS)
        if rejected:
            raise TaskValidationError(f"Fields cannot be updated directly: {', '.join(rejected)}")

        try:
            payload = TaskUpdate.model_validate(changes)
        except ValidationError as e:
            raise TaskValidationError(_validation_message(e)) from e

        updates = payload.model_dump(exclude_unset=True)
        nulls = [field for field in _NON_NULLABLE_UPDATE_FIELDS if field in updates and updates[field] is None]
        if nulls:
            raise TaskValidationError(f"Fields cannot be empty: {', '.join(nulls)}")

        def mutate(task: Task, now: datetime) -> bool:
            _require_creator(task, actor, "edit this task")
            detail_changes: dict[str, Any] = {}
            entries: list[ActivityLogEntry] = []

            for field, new_value in updates.items():
                old_value = getattr(task, field)
                if old_value == new_value:
                    continue

                if field == "priority":
                    entries.append(
                        build_entry(
                            action=ActivityAction.PRIORITY_CHANGED,
                            actor=actor,
                            now=now,
                            changes={"from": str(old_value), "to": str(new_value)},
                        )
                    )
                elif field == "due_date":
                    entries.append(
                        build_entry(
                            action=ActivityAction.DUE_DATE_CHANGED,
                            actor=actor,
                            now=now,
                            changes={"from": old_value.isoformat(), "to": new_value.isoformat()},
                        )
                    )
                else:
                    detail_changes[field] = {
                        "from": None if old_value is None else str(old_value),
                        "to": None if new_value is None else str(new_value),
                    }
                setattr(task, field, new_value)

            if detail_changes:
                entries.append(
                    build_entry(action=ActivityAction.TASK_UPDATED, actor=actor, now=now, changes=detail_changes)
                )

            _append(task, entries)
            return bool(entries)

        async with _deadline("update_task"):
            return await _apply(task_id=task_id, actor=actor, operation="updated", mutate=mutate)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


async def add_comment(*, actor: Principal, task_id: str, text: str) -> Task:
    """Append a comment (creator or assignee) and log ``comment_added``.

    The log entry references the comment by ID; it does not repeat the text.

    Raises:
        TaskValidationError: If the text is blank or longer than 500 characters
        ForbiddenError: If the actor is neither creator nor assignee
    """
    with span("workflow.add_comment"):
        cleaned = _clean_comment(text)

        def mutate(task: Task, now: datetime) -> bool:
            _require_participant(task, actor, "comment on this task")
            comment = Comment(id=uuid.uuid4().hex, author_id=actor.id, text=cleaned, created_at=now)
            task.comments.append(comment)
            task.append_activity(
                build_entry(
                    action=ActivityAction.COMMENT_ADDED,
                    actor=actor,
                    now=now,
                    changes={"comment_id": comment.id},
                )
            )
            return True

        async with _deadline("add_comment"):
            return await _apply(task_id=task_id, actor=actor, operation="comment added", mutate=mutate)


async def delete_comment(*, actor: Principal, task_id: str, comment_id: str) -> Task:
    """Remove a comment (its author or the task creator). Not logged.

    Raises:
        CommentNotFoundError: If the comment does not exist on the task
        ForbiddenError: If the actor is neither the author nor the creator
    """
    with span("workflow.delete_comment"):

        def mutate(task: Task, now: datetime) -> bool:  # noqa: ARG001
            comment = task.find_comment(comment_id)
            if comment is None:
                raise CommentNotFoundError(f"Comment not found: {comment_id}")
            if comment.author_id != actor.id and not task.is_creator(actor.id):
                raise ForbiddenError("Not authorized to delete this comment")
            task.comments = [c for c in task.comments if c.id != comment_id]
            return True

        async with _deadline("delete_comment"):
            return await _apply(task_id=task_id, actor=actor, operation="comment deleted", mutate=mutate)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_task(*, actor: Principal, task_id: str) -> Task:
    """Return a task visible to the actor (creator or assignee)."""
    with span("workflow.get_task"):
        task = await repository.load_task(task_id=task_id)
        _require_participant(task, actor, "view this task")
        return task


async def get_comments(*, actor: Principal, task_id: str) -> list[Comment]:
    """Return a task's comments, oldest first."""
    task = await get_task(actor=actor, task_id=task_id)
    return list(task.comments)


async def get_activity_logs(*, actor: Principal, task_id: str) -> list[ActivityLogEntry]:
    """Return a task's activity trail in the order it was recorded."""
    task = await get_task(actor=actor, task_id=task_id)
    return list(task.activity_logs)
