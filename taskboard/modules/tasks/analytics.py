"""Dashboard statistics over the tasks a user can see."""

import logging
from datetime import datetime

from taskboard.core.logging import span
from taskboard.domain.task import TaskPriority, TaskStatus, ensure_utc, utcnow
from taskboard.domain.user import Principal
from taskboard.models.service_models import DashboardStats
from taskboard.modules.tasks import repository


logger = logging.getLogger(__name__)


def _parse_created(value: str) -> datetime | None:
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


async def dashboard_stats(*, principal: Principal, now: datetime | None = None) -> DashboardStats:
    """Summarize visible tasks for a dashboard.

    Completion rate is the share of visible tasks that are completed, as a
    percentage rounded to two decimals. Average completion time is measured
    from creation to completion in whole days, and is None until something
    has been completed.

    Args:
        principal: User whose tasks are counted (created by or assigned to)
        now: Reference time for the overdue count (defaults to current time)

    Returns:
        DashboardStats for the principal
    """
    with span("analytics.dashboard_stats"):
        current = ensure_utc(now) or utcnow()
        by_status = dict.fromkeys(TaskStatus, 0)
        by_priority = {str(priority): 0 for priority in TaskPriority}
        overdue = 0
        completion_seconds: list[float] = []

        async for task in repository.iter_tasks():
            if not task.is_participant(principal.id):
                continue

            by_status[task.status] += 1
            by_priority[str(task.priority)] += 1
            if task.is_overdue(current):
                overdue += 1

            if task.status == TaskStatus.COMPLETED and task.completion_date is not None:
                created = _parse_created(task.created)
                if created is None:
                    logger.warning("Task %s has an unreadable creation timestamp: %s", task.id, task.created)
                    continue
                completion_seconds.append((task.completion_date - created).total_seconds())

        total = sum(by_status.values())
        completion_rate = round(by_status[TaskStatus.COMPLETED] / total * 100, 2) if total else 0.0
        average_days = None
        if completion_seconds:
            average_days = round(sum(completion_seconds) / len(completion_seconds) / 86400)

        return DashboardStats(
            total=total,
            not_started=by_status[TaskStatus.NOT_STARTED],
            in_progress=by_status[TaskStatus.IN_PROGRESS],
            review=by_status[TaskStatus.REVIEW],
            completed=by_status[TaskStatus.COMPLETED],
            overdue=overdue,
            by_priority=by_priority,
            completion_rate=completion_rate,
            average_completion_days=average_days,
        )
