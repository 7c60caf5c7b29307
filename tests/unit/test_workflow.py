"""Unit tests for the task workflow engine."""

import asyncio
from datetime import UTC, datetime

import pytest

from taskboard.core.config import settings
from taskboard.core.errors import (
    CommentNotFoundError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    OperationTimeoutError,
    TaskNotFoundError,
    TaskValidationError,
    UserNotFoundError,
)
from taskboard.domain.task import Task, TaskPriority, TaskStatus
from taskboard.modules.tasks import repository, workflow


def assert_completion_consistent(task: Task) -> None:
    if task.status == TaskStatus.COMPLETED:
        assert task.current_progress == 100
        assert task.completion_date is not None
    else:
        assert task.completion_date is None


@pytest.fixture
async def task(alice, due_date) -> Task:
    """A fresh unassigned task created by Alice."""
    return await workflow.create_task(actor=alice, title="Audit Q3", related_to="finance", due_date=due_date)


@pytest.fixture
async def assigned_task(task, alice, bob) -> Task:
    """Alice's task assigned to Bob."""
    return await workflow.assign_task(actor=alice, task_id=task.id, assignee_ids=[bob.id])


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task."""

    async def test_creates_with_defaults_and_log(self, task, alice):
        assert task.created_by == alice.id
        assert task.status == TaskStatus.NOT_STARTED
        assert task.priority == TaskPriority.MEDIUM
        assert task.current_progress == 0
        assert task.version == 1
        assert [e.action for e in task.activity_logs] == ["task_created"]
        assert task.activity_logs[0].message == "Task created by Alice"

    async def test_with_assignees_logs_assignment(self, alice, bob, carol, due_date):
        task = await workflow.create_task(
            actor=alice,
            title="Plan offsite",
            related_to="administration",
            due_date=due_date,
            assigned_to=[bob.id, carol.id, bob.id],
        )

        assert task.assigned_to == [bob.id, carol.id]
        assert [e.action for e in task.activity_logs] == ["task_created", "task_assigned"]
        assigned = task.activity_logs[1]
        assert assigned.changes["assigned_names"] == "Bob, Carol"
        assert assigned.message == "Task assigned to Bob, Carol by Alice"

    async def test_title_is_stripped(self, alice, due_date):
        task = await workflow.create_task(actor=alice, title="  Budget  ", related_to="finance", due_date=due_date)
        assert task.title == "Budget"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "   "},
            {"title": "x" * 101},
            {"related_to": "sales"},
            {"due_date": "not-a-date"},
            {"priority": "urgent"},
            {"description": "d" * 1001},
        ],
    )
    async def test_invalid_input_rejected(self, alice, due_date, overrides):
        fields = {"title": "Valid", "related_to": "tech", "due_date": due_date, **overrides}
        with pytest.raises(TaskValidationError):
            await workflow.create_task(actor=alice, **fields)

    async def test_unknown_assignee_rejected(self, alice, due_date, patched_db):
        with pytest.raises(UserNotFoundError):
            await workflow.create_task(
                actor=alice, title="Valid", related_to="tech", due_date=due_date, assigned_to=["999999"]
            )
        assert await patched_db.list_records(collection="tasks") == []


@pytest.mark.unit
class TestProgress:
    """Tests for update_progress."""

    async def test_first_progress_auto_starts(self, task, alice):
        updated = await workflow.update_progress(actor=alice, task_id=task.id, progress=40)

        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.current_progress == 40
        new_entries = updated.activity_logs[len(task.activity_logs) :]
        assert [e.action for e in new_entries] == ["status_changed", "progress_updated"]

    async def test_assignee_may_update(self, assigned_task, bob):
        updated = await workflow.update_progress(actor=bob, task_id=assigned_task.id, progress=10)
        assert updated.current_progress == 10

    async def test_outsider_forbidden_and_nothing_changes(self, task, carol):
        with pytest.raises(ForbiddenError):
            await workflow.update_progress(actor=carol, task_id=task.id, progress=40)

        reloaded = await repository.load_task(task_id=task.id)
        assert reloaded == task

    @pytest.mark.parametrize("progress", [-1, 101, True, 50.5, "40"])
    async def test_invalid_progress_rejected(self, task, alice, progress):
        with pytest.raises(TaskValidationError):
            await workflow.update_progress(actor=alice, task_id=task.id, progress=progress)

    async def test_missing_task(self, alice, patched_db):
        with pytest.raises(TaskNotFoundError):
            await workflow.update_progress(actor=alice, task_id="424242", progress=10)

    async def test_completed_task_keeps_full_progress(self, task, alice):
        approved = await workflow.approve_task(actor=alice, task_id=task.id)

        with pytest.raises(InvalidStateError):
            await workflow.update_progress(actor=alice, task_id=task.id, progress=40)

        reloaded = await repository.load_task(task_id=task.id)
        assert reloaded == approved
        assert_completion_consistent(reloaded)

    async def test_progress_after_reopen(self, task, alice):
        await workflow.approve_task(actor=alice, task_id=task.id)
        await workflow.reopen_task(actor=alice, task_id=task.id)

        updated = await workflow.update_progress(actor=alice, task_id=task.id, progress=40)

        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.current_progress == 40
        assert_completion_consistent(updated)


@pytest.mark.unit
class TestReviewWorkflow:
    """Submit, request changes, approve and reopen."""

    async def test_round_trip_produces_five_entries(self, task, alice, bob):
        await workflow.assign_task(actor=alice, task_id=task.id, assignee_ids=[bob.id])
        submitted = await workflow.submit_for_review(actor=bob, task_id=task.id)
        assert submitted.status == TaskStatus.REVIEW

        approved = await workflow.approve_task(actor=alice, task_id=task.id)

        assert approved.status == TaskStatus.COMPLETED
        assert approved.current_progress == 100
        assert approved.completion_date is not None
        assert [e.action for e in approved.activity_logs] == [
            "task_created",
            "task_assigned",
            "submitted_for_review",
            "status_changed",
            "task_completed",
        ]

    async def test_creator_who_is_not_assignee_cannot_submit(self, assigned_task, alice):
        with pytest.raises(ForbiddenError):
            await workflow.submit_for_review(actor=alice, task_id=assigned_task.id)

    async def test_submit_completed_task_rejected_unchanged(self, assigned_task, alice, bob):
        completed = await workflow.approve_task(actor=alice, task_id=assigned_task.id)

        with pytest.raises(InvalidStateError):
            await workflow.submit_for_review(actor=bob, task_id=assigned_task.id)

        assert await repository.load_task(task_id=assigned_task.id) == completed

    async def test_resubmit_from_review_allowed(self, assigned_task, bob):
        await workflow.submit_for_review(actor=bob, task_id=assigned_task.id)
        again = await workflow.submit_for_review(actor=bob, task_id=assigned_task.id)
        assert again.status == TaskStatus.REVIEW

    async def test_request_changes_with_feedback(self, assigned_task, alice, bob):
        await workflow.submit_for_review(actor=bob, task_id=assigned_task.id)
        updated = await workflow.request_changes(actor=alice, task_id=assigned_task.id, feedback=" Add totals ")

        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.activity_logs[-1].action == "changes_requested"
        assert updated.comments[-1].text == "Add totals"
        assert updated.comments[-1].author_id == alice.id

    async def test_request_changes_outside_review_rejected(self, assigned_task, alice):
        with pytest.raises(InvalidStateError):
            await workflow.request_changes(actor=alice, task_id=assigned_task.id)

    async def test_only_creator_approves(self, assigned_task, bob):
        with pytest.raises(ForbiddenError):
            await workflow.approve_task(actor=bob, task_id=assigned_task.id)

    async def test_approve_directly_from_not_started(self, task, alice):
        approved = await workflow.approve_task(actor=alice, task_id=task.id)
        assert_completion_consistent(approved)

    async def test_reopen(self, task, alice):
        await workflow.approve_task(actor=alice, task_id=task.id)
        reopened = await workflow.reopen_task(actor=alice, task_id=task.id)

        assert reopened.status == TaskStatus.IN_PROGRESS
        assert_completion_consistent(reopened)
        assert reopened.activity_logs[-1].action == "task_reopened"

    async def test_reopen_open_task_rejected(self, task, alice):
        with pytest.raises(InvalidStateError):
            await workflow.reopen_task(actor=alice, task_id=task.id)

    async def test_log_never_shrinks(self, task, alice, bob):
        lengths = [len(task.activity_logs)]
        steps = [
            workflow.assign_task(actor=alice, task_id=task.id, assignee_ids=[bob.id]),
            workflow.update_progress(actor=bob, task_id=task.id, progress=30),
            workflow.add_comment(actor=bob, task_id=task.id, text="Halfway"),
            workflow.submit_for_review(actor=bob, task_id=task.id),
            workflow.request_changes(actor=alice, task_id=task.id),
            workflow.submit_for_review(actor=bob, task_id=task.id),
            workflow.approve_task(actor=alice, task_id=task.id),
            workflow.reopen_task(actor=alice, task_id=task.id),
        ]
        for step in steps:
            updated = await step
            assert_completion_consistent(updated)
            lengths.append(len(updated.activity_logs))

        assert lengths == sorted(lengths)
        assert len(set(lengths)) == len(lengths)


@pytest.mark.unit
class TestAssignment:
    """Assign, reassign and unassign."""

    async def test_assign_replaces_set(self, assigned_task, alice, carol):
        updated = await workflow.assign_task(actor=alice, task_id=assigned_task.id, assignee_ids=[carol.id])
        assert updated.assigned_to == [carol.id]

    async def test_reassign_logs_reassigned(self, assigned_task, alice, carol):
        updated = await workflow.reassign_task(actor=alice, task_id=assigned_task.id, assignee_ids=[carol.id])
        entry = updated.activity_logs[-1]
        assert entry.action == "task_reassigned"
        assert entry.changes["assigned_to"] == [{"id": carol.id, "name": "Carol"}]

    async def test_empty_assignment_rejected(self, task, alice):
        with pytest.raises(TaskValidationError):
            await workflow.assign_task(actor=alice, task_id=task.id, assignee_ids=[])

    async def test_assignee_cannot_reassign(self, assigned_task, bob, carol):
        with pytest.raises(ForbiddenError):
            await workflow.reassign_task(actor=bob, task_id=assigned_task.id, assignee_ids=[carol.id])

    async def test_creator_may_assign_self(self, task, alice):
        updated = await workflow.assign_task(actor=alice, task_id=task.id, assignee_ids=[alice.id])
        assert updated.assigned_to == [alice.id]

    async def test_unassign(self, assigned_task, alice, bob):
        updated = await workflow.unassign_user(actor=alice, task_id=assigned_task.id, user_id=bob.id)

        assert updated.assigned_to == []
        entry = updated.activity_logs[-1]
        assert entry.action == "task_unassigned"
        assert entry.message == "Bob removed from task by Alice"

    async def test_unassign_non_assignee_rejected(self, assigned_task, alice, carol):
        with pytest.raises(TaskValidationError):
            await workflow.unassign_user(actor=alice, task_id=assigned_task.id, user_id=carol.id)


@pytest.mark.unit
class TestUpdateTask:
    """Allow-listed detail edits."""

    async def test_priority_and_due_date_get_own_entries(self, task, alice):
        new_due = datetime(2030, 1, 15, tzinfo=UTC)
        updated = await workflow.update_task(
            actor=alice,
            task_id=task.id,
            changes={"priority": "high", "due_date": new_due.isoformat(), "title": "Audit Q4"},
        )

        assert updated.priority == TaskPriority.HIGH
        assert updated.due_date == new_due
        assert updated.title == "Audit Q4"
        actions = [e.action for e in updated.activity_logs[1:]]
        assert actions == ["priority_changed", "due_date_changed", "task_updated"]
        assert updated.activity_logs[-1].changes == {"title": {"from": "Audit Q3", "to": "Audit Q4"}}

    async def test_protected_field_rejected(self, task, alice):
        with pytest.raises(TaskValidationError, match="status"):
            await workflow.update_task(actor=alice, task_id=task.id, changes={"status": "completed"})

    async def test_required_field_cannot_be_nulled(self, task, alice):
        with pytest.raises(TaskValidationError):
            await workflow.update_task(actor=alice, task_id=task.id, changes={"title": None})

    async def test_no_op_is_not_persisted(self, task, alice, patched_db):
        calls_before = patched_db.update_calls
        unchanged = await workflow.update_task(actor=alice, task_id=task.id, changes={"priority": "medium"})

        assert unchanged.version == task.version
        assert patched_db.update_calls == calls_before

    async def test_assignee_cannot_edit(self, assigned_task, bob):
        with pytest.raises(ForbiddenError):
            await workflow.update_task(actor=bob, task_id=assigned_task.id, changes={"title": "Mine now"})


@pytest.mark.unit
class TestComments:
    """Adding and deleting comments."""

    async def test_add_comment_logs_reference_only(self, assigned_task, bob):
        updated = await workflow.add_comment(actor=bob, task_id=assigned_task.id, text="Started")

        comment = updated.comments[-1]
        assert comment.text == "Started"
        entry = updated.activity_logs[-1]
        assert entry.action == "comment_added"
        assert entry.changes == {"comment_id": comment.id}

    @pytest.mark.parametrize("text", ["", "   ", "c" * 501])
    async def test_invalid_comment_rejected(self, task, alice, text):
        with pytest.raises(TaskValidationError):
            await workflow.add_comment(actor=alice, task_id=task.id, text=text)

    async def test_outsider_cannot_comment(self, task, carol):
        with pytest.raises(ForbiddenError):
            await workflow.add_comment(actor=carol, task_id=task.id, text="Hi")

    async def test_author_deletes_without_log(self, assigned_task, bob):
        with_comment = await workflow.add_comment(actor=bob, task_id=assigned_task.id, text="Oops")
        comment_id = with_comment.comments[-1].id

        updated = await workflow.delete_comment(actor=bob, task_id=assigned_task.id, comment_id=comment_id)

        assert updated.comments == []
        assert len(updated.activity_logs) == len(with_comment.activity_logs)

    async def test_creator_deletes_any_comment(self, assigned_task, alice, bob):
        with_comment = await workflow.add_comment(actor=bob, task_id=assigned_task.id, text="Note")
        comment_id = with_comment.comments[-1].id
        updated = await workflow.delete_comment(actor=alice, task_id=assigned_task.id, comment_id=comment_id)
        assert updated.comments == []

    async def test_other_user_cannot_delete(self, assigned_task, alice, carol):
        with_comment = await workflow.add_comment(actor=alice, task_id=assigned_task.id, text="Mine")
        comment_id = with_comment.comments[-1].id
        await workflow.assign_task(actor=alice, task_id=assigned_task.id, assignee_ids=[carol.id])

        with pytest.raises(ForbiddenError):
            await workflow.delete_comment(actor=carol, task_id=assigned_task.id, comment_id=comment_id)

        comments = await workflow.get_comments(actor=alice, task_id=assigned_task.id)
        assert [c.id for c in comments] == [comment_id]

    async def test_missing_comment(self, task, alice):
        with pytest.raises(CommentNotFoundError):
            await workflow.delete_comment(actor=alice, task_id=task.id, comment_id="nope")


@pytest.mark.unit
class TestReadsAndDeletion:
    """get_task, activity reads and delete_task."""

    async def test_outsider_cannot_read(self, task, carol):
        with pytest.raises(ForbiddenError):
            await workflow.get_task(actor=carol, task_id=task.id)

    async def test_activity_logs_in_order(self, assigned_task, bob):
        entries = await workflow.get_activity_logs(actor=bob, task_id=assigned_task.id)
        assert [e.action for e in entries] == ["task_created", "task_assigned"]

    async def test_only_creator_deletes(self, assigned_task, alice, bob):
        with pytest.raises(ForbiddenError):
            await workflow.delete_task(actor=bob, task_id=assigned_task.id)

        await workflow.delete_task(actor=alice, task_id=assigned_task.id)
        with pytest.raises(TaskNotFoundError):
            await workflow.get_task(actor=alice, task_id=assigned_task.id)


@pytest.mark.unit
class TestConcurrency:
    """Optimistic version retries and deadlines."""

    async def test_lost_race_is_retried(self, task, alice, patched_db):
        patched_db.pending_conflicts = 1

        updated = await workflow.update_progress(actor=alice, task_id=task.id, progress=20)

        assert updated.current_progress == 20
        # The simulated writer bumped the version once, then our save bumped it again
        assert updated.version == task.version + 2
        assert [e.action for e in updated.activity_logs].count("progress_updated") == 1

    async def test_conflict_after_retries_exhausted(self, task, alice, patched_db, monkeypatch):
        monkeypatch.setattr(settings, "conflict_max_retries", 2)
        patched_db.pending_conflicts = 5

        with pytest.raises(ConflictError):
            await workflow.update_progress(actor=alice, task_id=task.id, progress=20)

        reloaded = await repository.load_task(task_id=task.id)
        assert reloaded.current_progress == 0

    async def test_slow_operation_times_out(self, task, alice, monkeypatch):
        original_load = repository.load_task

        async def slow_load(*, task_id: str) -> Task:
            await asyncio.sleep(1)
            return await original_load(task_id=task_id)

        monkeypatch.setattr(settings, "operation_timeout_seconds", 0.01)
        monkeypatch.setattr(repository, "load_task", slow_load)

        with pytest.raises(OperationTimeoutError):
            await workflow.approve_task(actor=alice, task_id=task.id)

        monkeypatch.setattr(repository, "load_task", original_load)
        assert (await repository.load_task(task_id=task.id)).status == TaskStatus.NOT_STARTED

    async def test_concurrent_updates_all_land(self, task, alice):
        await asyncio.gather(
            *(workflow.add_comment(actor=alice, task_id=task.id, text=f"note {i}") for i in range(3))
        )
        reloaded = await repository.load_task(task_id=task.id)
        assert len(reloaded.comments) == 3
        assert len(reloaded.activity_logs) == 4
