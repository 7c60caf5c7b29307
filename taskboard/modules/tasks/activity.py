"""Activity log message rendering.

Each action maps to a fixed template filled from the structured ``changes``
payload. Rendering never raises: missing fields become empty strings and
unknown actions fall back to a generic message.
"""

from datetime import datetime
from typing import Any

from taskboard.domain.task import ActivityAction, ActivityLogEntry, TaskStatus
from taskboard.domain.user import Principal


STATUS_LABELS: dict[str, str] = {
    TaskStatus.NOT_STARTED: "Not Started",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.REVIEW: "Review",
    TaskStatus.COMPLETED: "Completed",
}

FALLBACK_TEMPLATE = "Task modified by {actor}"

MESSAGE_TEMPLATES: dict[str, str] = {
    ActivityAction.TASK_CREATED: "Task created by {actor}",
    ActivityAction.TASK_ASSIGNED: "Task assigned to {assigned_names} by {actor}",
    ActivityAction.TASK_REASSIGNED: "Task reassigned to {assigned_names} by {actor}",
    ActivityAction.TASK_UNASSIGNED: "{user_name} removed from task by {actor}",
    ActivityAction.STATUS_CHANGED: 'Status changed from "{from}" to "{to}" by {actor}',
    ActivityAction.SUBMITTED_FOR_REVIEW: "Task submitted for review by {actor}",
    ActivityAction.CHANGES_REQUESTED: "Changes requested by {actor}",
    ActivityAction.TASK_REOPENED: "Task reopened by {actor}",
    ActivityAction.PRIORITY_CHANGED: 'Priority changed from "{from}" to "{to}" by {actor}',
    ActivityAction.PROGRESS_UPDATED: "Progress updated from {from}% to {to}% by {actor}",
    ActivityAction.DUE_DATE_CHANGED: "Due date changed from {from} to {to} by {actor}",
    ActivityAction.TASK_COMPLETED: "Task completed by {actor} at {completed_at}",
    ActivityAction.COMMENT_ADDED: "Comment added by {actor}",
    ActivityAction.TASK_UPDATED: "Task updated by {actor}",
}


class _BlankDefaults(dict[str, Any]):
    """Mapping that renders absent template fields as empty strings."""

    def __missing__(self, key: str) -> str:
        return ""


def _render_date(value: Any, fmt: str) -> str:  # noqa: ANN401
    if isinstance(value, datetime):
        return value.strftime(fmt)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime(fmt)
        except ValueError:
            return value
    return "" if value is None else str(value)


def _prepare_fields(action: str, changes: dict[str, Any]) -> dict[str, Any]:
    fields = {key: ("" if value is None else value) for key, value in changes.items()}

    if action == ActivityAction.STATUS_CHANGED:
        for key in ("from", "to"):
            raw = changes.get(key)
            fields[key] = STATUS_LABELS.get(raw, "" if raw is None else str(raw))
    elif action == ActivityAction.DUE_DATE_CHANGED:
        for key in ("from", "to"):
            fields[key] = _render_date(changes.get(key), "%Y-%m-%d")
    elif action == ActivityAction.TASK_COMPLETED:
        fields["completed_at"] = _render_date(changes.get("completed_at"), "%Y-%m-%d %H:%M UTC")

    return fields


def format_activity_message(action: str, changes: dict[str, Any] | None, actor_name: str | None) -> str:
    """Render the human-readable message for an activity log entry.

    Args:
        action: ActivityAction value (unknown actions use the generic template)
        changes: Structured change payload, may be empty or None
        actor_name: Display name of the acting principal

    Returns:
        Audit sentence such as ``Status changed from "Review" to "Completed" by Ada``
    """
    changes = changes or {}
    template = MESSAGE_TEMPLATES.get(action, FALLBACK_TEMPLATE)
    fields = _BlankDefaults(_prepare_fields(action, changes))
    fields["actor"] = actor_name or ""

    try:
        return template.format_map(fields)
    except (ValueError, IndexError, AttributeError):
        return FALLBACK_TEMPLATE.format(actor=actor_name or "")


def build_entry(
    *,
    action: ActivityAction,
    actor: Principal,
    now: datetime,
    changes: dict[str, Any] | None = None,
) -> ActivityLogEntry:
    """Create an activity log entry with its rendered message."""
    changes = changes or {}
    return ActivityLogEntry(
        action=str(action),
        actor_id=actor.id,
        changes=changes,
        message=format_activity_message(action, changes, actor.name),
        timestamp=now,
    )
