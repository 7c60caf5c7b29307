"""Read-only task views scoped to a principal.

Status predicates are pushed down to the store as filters; membership checks
on the JSON ``assigned_to`` column run here, over tasks fetched one chunk at a
time.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from taskboard.core.config import constants
from taskboard.core.errors import TaskValidationError
from taskboard.core.logging import span
from taskboard.domain.task import ActivityLogEntry, RelatedTo, Task, TaskStatus, ensure_utc, utcnow
from taskboard.domain.user import Principal
from taskboard.models.service_models import ActivityFeedEntry, TaskBoard
from taskboard.modules.tasks import repository


logger = logging.getLogger(__name__)

TaskPredicate = Callable[[Task], bool]


def _status_filter(status: TaskStatus) -> str:
    return f'status = "{status}"'


async def _collect(*, predicate: TaskPredicate, filter_query: str = "") -> list[Task]:
    return [task async for task in repository.iter_tasks(filter_query=filter_query) if predicate(task)]


def _newest_first(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: (t.created, int(t.id) if t.id.isdigit() else 0), reverse=True)


def _latest_completed_first(tasks: list[Task]) -> list[Task]:
    """Order by completion date, newest first; undated tasks trail, newest created first."""
    dated = sorted((t for t in tasks if t.completion_date is not None), key=lambda t: t.completion_date, reverse=True)
    return dated + _newest_first([t for t in tasks if t.completion_date is None])


def _soonest_due_first(tasks: list[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: t.due_date)


def _visible_to(principal: Principal) -> TaskPredicate:
    return lambda task: task.is_participant(principal.id)


async def _visible_with_status(principal: Principal, status: TaskStatus) -> list[Task]:
    tasks = await _collect(predicate=_visible_to(principal), filter_query=_status_filter(status))
    return _newest_first(tasks)


async def not_started(*, principal: Principal) -> list[Task]:
    """Not-started tasks the principal created or is assigned to."""
    with span("queries.not_started"):
        return await _visible_with_status(principal, TaskStatus.NOT_STARTED)


async def in_progress(*, principal: Principal) -> list[Task]:
    """In-progress tasks the principal created or is assigned to."""
    with span("queries.in_progress"):
        return await _visible_with_status(principal, TaskStatus.IN_PROGRESS)


async def in_review(*, principal: Principal) -> list[Task]:
    """Tasks awaiting review that the principal created or is assigned to."""
    with span("queries.in_review"):
        return await _visible_with_status(principal, TaskStatus.REVIEW)


async def completed(*, principal: Principal) -> list[Task]:
    """Completed tasks the principal worked on, most recently completed first.

    A creator sees their own completed tasks here only when nobody was
    assigned; delegated work shows up under ``assigned_by_me`` instead.
    """
    with span("queries.completed"):

        def predicate(task: Task) -> bool:
            if task.is_assignee(principal.id):
                return True
            return task.is_creator(principal.id) and not task.assigned_to

        tasks = await _collect(predicate=predicate, filter_query=_status_filter(TaskStatus.COMPLETED))
        return _latest_completed_first(tasks)


async def assigned_to_me(*, principal: Principal) -> list[Task]:
    """Tasks others created and assigned to the principal."""
    with span("queries.assigned_to_me"):
        tasks = await _collect(
            predicate=lambda t: t.is_assignee(principal.id) and not t.is_creator(principal.id),
        )
        return _newest_first(tasks)


async def assigned_by_me(*, principal: Principal) -> list[Task]:
    """Tasks the principal created and delegated to someone."""
    with span("queries.assigned_by_me"):
        tasks = await _collect(predicate=lambda t: t.is_creator(principal.id) and bool(t.assigned_to))
        return _newest_first(tasks)


async def board(*, principal: Principal) -> TaskBoard:
    """Every visible task, split into status columns in a single scan."""
    with span("queries.board"):
        columns: dict[TaskStatus, list[Task]] = {status: [] for status in TaskStatus}
        async for task in repository.iter_tasks():
            if task.is_participant(principal.id):
                columns[task.status].append(task)

        return TaskBoard(
            not_started=_newest_first(columns[TaskStatus.NOT_STARTED]),
            in_progress=_newest_first(columns[TaskStatus.IN_PROGRESS]),
            review=_newest_first(columns[TaskStatus.REVIEW]),
            completed=_latest_completed_first(columns[TaskStatus.COMPLETED]),
        )


async def overdue(*, principal: Principal, now: datetime | None = None) -> list[Task]:
    """Visible, unfinished tasks whose due date has passed, oldest due first."""
    with span("queries.overdue"):
        current = ensure_utc(now) or utcnow()
        tasks = await _collect(
            predicate=lambda t: t.is_participant(principal.id) and t.is_overdue(current),
            filter_query=f'status != "{TaskStatus.COMPLETED}"',
        )
        return _soonest_due_first(tasks)


async def upcoming(
    *,
    principal: Principal,
    days: int = constants.UPCOMING_DEFAULT_DAYS,
    now: datetime | None = None,
) -> list[Task]:
    """Visible, unfinished tasks due within the next ``days`` days."""
    if days < 0:
        raise TaskValidationError("Days must not be negative")

    with span("queries.upcoming"):
        current = ensure_utc(now) or utcnow()
        horizon = current + timedelta(days=days)
        tasks = await _collect(
            predicate=lambda t: t.is_participant(principal.id) and current <= t.due_date <= horizon,
            filter_query=f'status != "{TaskStatus.COMPLETED}"',
        )
        return _soonest_due_first(tasks)


async def by_department(*, principal: Principal, related_to: RelatedTo | str) -> list[Task]:
    """Visible tasks belonging to one organizational area."""
    try:
        department = RelatedTo(related_to)
    except ValueError as e:
        raise TaskValidationError(f"Unknown department: {related_to}") from e

    with span("queries.by_department"):
        tasks = await _collect(predicate=_visible_to(principal), filter_query=f'related_to = "{department}"')
        return _newest_first(tasks)


async def search(*, principal: Principal, query: str) -> list[Task]:
    """Case-insensitive substring search over title, description and notes.

    Raises:
        TaskValidationError: If the query is blank
    """
    needle = (query or "").strip().lower()
    if not needle:
        raise TaskValidationError("Search query cannot be empty")

    with span("queries.search"):

        def matches(task: Task) -> bool:
            if not task.is_participant(principal.id):
                return False
            haystacks = (task.title, task.description or "", task.notes or "")
            return any(needle in text.lower() for text in haystacks)

        tasks = await _collect(predicate=matches)
        logger.debug("Search matched %d tasks", len(tasks), extra={"actor_id": principal.id})
        return _newest_first(tasks)


def _entry_matches(
    entry: ActivityLogEntry,
    *,
    start: datetime | None,
    end: datetime | None,
    actor_id: str | None,
    action: str | None,
) -> bool:
    if start is not None and entry.timestamp < start:
        return False
    if end is not None and entry.timestamp > end:
        return False
    if actor_id is not None and entry.actor_id != actor_id:
        return False
    return action is None or entry.action == action


async def activity_feed(
    *,
    principal: Principal,
    start: datetime | None = None,
    end: datetime | None = None,
    actor_id: str | None = None,
    action: str | None = None,
) -> list[ActivityFeedEntry]:
    """Activity across all visible tasks, newest first, with optional filters."""
    with span("queries.activity_feed"):
        start = ensure_utc(start)
        end = ensure_utc(end)
        if start is not None and end is not None and start > end:
            raise TaskValidationError("Start of the range must not be after its end")

        feed: list[ActivityFeedEntry] = []
        async for task in repository.iter_tasks():
            if not task.is_participant(principal.id):
                continue
            for entry in task.activity_logs:
                if _entry_matches(entry, start=start, end=end, actor_id=actor_id, action=action):
                    feed.append(
                        ActivityFeedEntry(
                            task_id=task.id,
                            task_title=task.title,
                            **entry.model_dump(),
                        )
                    )

        feed.sort(key=lambda item: item.timestamp, reverse=True)
        return feed
