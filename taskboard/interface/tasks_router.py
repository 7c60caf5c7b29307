"""HTTP router for task workflow operations."""

import logging
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query

from taskboard.core.config import constants
from taskboard.domain.create_models import TaskCreate
from taskboard.domain.task import Task
from taskboard.domain.update_models import AssignmentUpdate, ChangesRequest, CommentCreate, ProgressUpdate
from taskboard.domain.user import Principal
from taskboard.interface.auth import get_current_principal
from taskboard.interface.responses import envelope
from taskboard.modules.tasks import analytics, queries, workflow


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def _task_body(task: Task) -> dict[str, Any]:
    return task.model_dump(mode="json")


def _tasks_body(tasks: list[Task]) -> list[dict[str, Any]]:
    return [_task_body(task) for task in tasks]


# ---------------------------------------------------------------------------
# Views, search and statistics (declared before /{task_id})
# ---------------------------------------------------------------------------


@router.get("/views/not-started")
async def view_not_started(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.not_started(principal=principal)))


@router.get("/views/in-progress")
async def view_in_progress(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.in_progress(principal=principal)))


@router.get("/views/review")
async def view_in_review(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.in_review(principal=principal)))


@router.get("/views/completed")
async def view_completed(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.completed(principal=principal)))


@router.get("/views/assigned-to-me")
async def view_assigned_to_me(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.assigned_to_me(principal=principal)))


@router.get("/views/assigned-by-me")
async def view_assigned_by_me(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.assigned_by_me(principal=principal)))


@router.get("/views/overdue")
async def view_overdue(principal: CurrentPrincipal) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.overdue(principal=principal)))


@router.get("/views/upcoming")
async def view_upcoming(
    principal: CurrentPrincipal,
    days: Annotated[int, Query(ge=0)] = constants.UPCOMING_DEFAULT_DAYS,
) -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.upcoming(principal=principal, days=days)))


@router.get("/views/board")
async def view_board(principal: CurrentPrincipal) -> dict[str, Any]:
    board = await queries.board(principal=principal)
    return envelope(board=board.model_dump(mode="json"))


@router.get("/search")
async def search_tasks(principal: CurrentPrincipal, q: str = "") -> dict[str, Any]:
    return envelope(tasks=_tasks_body(await queries.search(principal=principal, query=q)))


@router.get("/department/{related_to}")
async def tasks_by_department(related_to: str, principal: CurrentPrincipal) -> dict[str, Any]:
    tasks = await queries.by_department(principal=principal, related_to=related_to)
    return envelope(tasks=_tasks_body(tasks))


@router.get("/activity")
async def activity_feed(
    principal: CurrentPrincipal,
    start: datetime | None = None,
    end: datetime | None = None,
    actor_id: str | None = None,
    action: str | None = None,
) -> dict[str, Any]:
    feed = await queries.activity_feed(principal=principal, start=start, end=end, actor_id=actor_id, action=action)
    return envelope(activity_logs=[item.model_dump(mode="json") for item in feed])


@router.get("/dashboard")
async def dashboard(principal: CurrentPrincipal) -> dict[str, Any]:
    stats = await analytics.dashboard_stats(principal=principal)
    return envelope(stats=stats.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Single task
# ---------------------------------------------------------------------------


@router.post("", status_code=constants.HTTP_CREATED)
async def create_task(payload: TaskCreate, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.create_task(actor=principal, **payload.model_dump())
    return envelope("Task created successfully", task=_task_body(task))


@router.get("/{task_id}")
async def get_task(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.get_task(actor=principal, task_id=task_id)
    return envelope(task=_task_body(task))


@router.patch("/{task_id}")
async def update_task(
    task_id: str,
    principal: CurrentPrincipal,
    changes: Annotated[dict[str, Any], Body()],
) -> dict[str, Any]:
    task = await workflow.update_task(actor=principal, task_id=task_id, changes=changes)
    return envelope("Task updated successfully", task=_task_body(task))


@router.delete("/{task_id}")
async def delete_task(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    await workflow.delete_task(actor=principal, task_id=task_id)
    return envelope("Task deleted successfully")


@router.patch("/{task_id}/progress")
async def update_progress(task_id: str, payload: ProgressUpdate, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.update_progress(actor=principal, task_id=task_id, progress=payload.current_progress)
    return envelope("Progress updated successfully", task=_task_body(task))


@router.post("/{task_id}/submit-review")
async def submit_for_review(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.submit_for_review(actor=principal, task_id=task_id)
    return envelope("Task submitted for review", task=_task_body(task))


@router.post("/{task_id}/request-changes")
async def request_changes(
    task_id: str,
    principal: CurrentPrincipal,
    payload: ChangesRequest | None = None,
) -> dict[str, Any]:
    feedback = payload.feedback if payload else None
    task = await workflow.request_changes(actor=principal, task_id=task_id, feedback=feedback)
    return envelope("Changes requested", task=_task_body(task))


@router.post("/{task_id}/approve")
async def approve_task(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.approve_task(actor=principal, task_id=task_id)
    return envelope("Task approved and completed", task=_task_body(task))


@router.post("/{task_id}/reopen")
async def reopen_task(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.reopen_task(actor=principal, task_id=task_id)
    return envelope("Task reopened", task=_task_body(task))


# ---------------------------------------------------------------------------
# Assignment
# ---------------------------------------------------------------------------


@router.put("/{task_id}/assign")
async def assign_task(task_id: str, payload: AssignmentUpdate, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.assign_task(actor=principal, task_id=task_id, assignee_ids=payload.assigned_to)
    return envelope("Task assigned successfully", task=_task_body(task))


@router.put("/{task_id}/reassign")
async def reassign_task(task_id: str, payload: AssignmentUpdate, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.reassign_task(actor=principal, task_id=task_id, assignee_ids=payload.assigned_to)
    return envelope("Task reassigned successfully", task=_task_body(task))


@router.delete("/{task_id}/assign/{user_id}")
async def unassign_user(task_id: str, user_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.unassign_user(actor=principal, task_id=task_id, user_id=user_id)
    return envelope("User unassigned successfully", task=_task_body(task))


# ---------------------------------------------------------------------------
# Comments and activity
# ---------------------------------------------------------------------------


@router.post("/{task_id}/comments", status_code=constants.HTTP_CREATED)
async def add_comment(task_id: str, payload: CommentCreate, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.add_comment(actor=principal, task_id=task_id, text=payload.comment)
    return envelope("Comment added successfully", task=_task_body(task))


@router.get("/{task_id}/comments")
async def get_comments(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    comments = await workflow.get_comments(actor=principal, task_id=task_id)
    return envelope(comments=[comment.model_dump(mode="json") for comment in comments])


@router.delete("/{task_id}/comments/{comment_id}")
async def delete_comment(task_id: str, comment_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    task = await workflow.delete_comment(actor=principal, task_id=task_id, comment_id=comment_id)
    return envelope("Comment deleted successfully", task=_task_body(task))


@router.get("/{task_id}/activity")
async def get_activity_logs(task_id: str, principal: CurrentPrincipal) -> dict[str, Any]:
    entries = await workflow.get_activity_logs(actor=principal, task_id=task_id)
    return envelope(activity_logs=[entry.model_dump(mode="json") for entry in entries])
