"""
AssigneeCompletionTracker tests.

Completion is personal and idempotent, and it never moves the goal.
"""

from uuid import uuid4

import pytest

from pdca_kernel.domain.goal import Goal, GoalStatus, UserRole
from pdca_kernel.domain.history import TaskCompleted
from pdca_kernel.domain.results import WorkflowErrorKind
from pdca_kernel.services.assignee_tracker import (
    OWN_TASKS_ONLY_MESSAGE,
    AssigneeCompletionTracker,
)


class _CommentLandsFirst:
    """Wraps a repository; another user comments just before each completion commit."""

    def __init__(self, inner, recorder, commenter):
        self._inner = inner
        self._recorder = recorder
        self._commenter = commenter

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def set_assignee_completion(self, goal_id, *args, **kwargs):
        current = self._inner.load_goal(goal_id)
        self._inner.append_history(
            goal_id, current.version, self._recorder.comment(self._commenter, "meanwhile")
        )
        return self._inner.set_assignee_completion(goal_id, *args, **kwargs)


@pytest.fixture
def colleague(make_actor):
    return make_actor(UserRole.EMPLOYEE, name="Cora Colleague")


@pytest.fixture
def shared_goal(goal_factory, employee, colleague):
    """Owned by ``head``; ``employee`` and ``colleague`` are assignees."""
    return goal_factory(assignee_ids=(employee.user_id, colleague.user_id))


class TestCompleteOwnSlice:
    def test_assignee_completes_self(self, tracker, shared_goal, employee, repo):
        result = tracker.complete_assignee_task(
            shared_goal.goal_id, employee.user_id, employee, notes="Data collected"
        )

        assert result.ok
        assert result.assignee.is_completed
        assert result.assignee.completion_notes == "Data collected"
        assert result.goal.version == shared_goal.version + 1
        action = result.goal.workflow_history[-1].action
        assert isinstance(action, TaskCompleted)
        assert action.task_id is None
        assert action.assignee_id == employee.user_id
        assert action.notes == "Data collected"

    def test_second_completion_is_a_noop(self, tracker, shared_goal, employee, notifier, repo):
        tracker.complete_assignee_task(shared_goal.goal_id, employee.user_id, employee)
        before = repo.load_goal(shared_goal.goal_id)
        notifier.clear()

        again = tracker.complete_assignee_task(shared_goal.goal_id, employee.user_id, employee)

        assert again.ok
        assert again.goal == before
        assert repo.load_goal(shared_goal.goal_id) == before
        assert notifier.actions() == []

    def test_two_assignees_complete_separately(
        self, tracker, shared_goal, employee, colleague, head, repo
    ):
        tracker.complete_assignee_task(shared_goal.goal_id, employee.user_id, employee)
        assert tracker.pending_assignees(shared_goal.goal_id) == (
            head.user_id, colleague.user_id,
        )

        tracker.complete_assignee_task(shared_goal.goal_id, colleague.user_id, colleague)
        tracker.complete_assignee_task(shared_goal.goal_id, head.user_id, head)

        assert tracker.all_assignees_complete(shared_goal.goal_id)
        goal = repo.load_goal(shared_goal.goal_id)
        assert goal.status == GoalStatus.PLAN
        completions = [e for e in goal.workflow_history if isinstance(e.action, TaskCompleted)]
        assert [e.action.assignee_id for e in completions] == [
            employee.user_id, colleague.user_id, head.user_id,
        ]


class TestCompletionRights:
    def test_fellow_assignee_cannot_complete_for_another(
        self, tracker, shared_goal, employee, colleague
    ):
        result = tracker.complete_assignee_task(shared_goal.goal_id, colleague.user_id, employee)
        assert result.error.kind == WorkflowErrorKind.FORBIDDEN
        assert result.error.message == OWN_TASKS_ONLY_MESSAGE

    def test_department_head_completes_for_assignee(
        self, tracker, shared_goal, employee, make_actor
    ):
        other_head = make_actor(UserRole.HEAD, name="Second Head")
        result = tracker.complete_assignee_task(shared_goal.goal_id, employee.user_id, other_head)
        assert result.ok
        assert result.goal.workflow_history[-1].user_id == other_head.user_id

    def test_head_elsewhere_needs_department_grant(
        self, tracker, shared_goal, employee, make_actor, repo
    ):
        remote_head = make_actor(UserRole.HEAD, department="Operations")
        denied = tracker.complete_assignee_task(shared_goal.goal_id, employee.user_id, remote_head)
        assert denied.error.kind == WorkflowErrorKind.FORBIDDEN

        repo.grant_department_permission(remote_head.user_id, shared_goal.department)
        assert tracker.complete_assignee_task(
            shared_goal.goal_id, employee.user_id, remote_head
        ).ok


class TestMissingTargets:
    def test_missing_goal(self, tracker, employee):
        result = tracker.complete_assignee_task(uuid4(), employee.user_id, employee)
        assert result.error.code == "GOAL_NOT_FOUND"

    def test_user_not_assigned(self, tracker, shared_goal, outsider):
        result = tracker.complete_assignee_task(shared_goal.goal_id, outsider.user_id, outsider)
        assert result.error.kind == WorkflowErrorKind.NOT_FOUND
        assert result.error.code == "ASSIGNEE_NOT_FOUND"


class TestLegacyAssignee:
    """Goals that predate assignee rows carry only current_assignee_id."""

    @pytest.fixture
    def legacy_goal(self, repo, head, employee, clock):
        return repo.create_goal(
            Goal(
                goal_id=uuid4(),
                owner_id=head.user_id,
                department="Quality",
                subject="Legacy goal",
                current_assignee_id=employee.user_id,
                created_at=clock.now(),
                updated_at=clock.now(),
            )
        )

    def test_legacy_assignee_completes_and_gets_a_row(
        self, tracker, legacy_goal, employee, repo
    ):
        result = tracker.complete_assignee_task(legacy_goal.goal_id, employee.user_id, employee)

        assert result.ok
        rows = repo.list_assignees(legacy_goal.goal_id)
        assert [(r.user_id, r.is_completed) for r in rows] == [(employee.user_id, True)]
        assert result.goal.version == legacy_goal.version + 1

    def test_legacy_field_ignored_once_rows_exist(
        self, tracker, legacy_goal, employee, head, repo, clock
    ):
        repo.add_assignees(legacy_goal.goal_id, [head.user_id], head.user_id, clock.now())
        result = tracker.complete_assignee_task(legacy_goal.goal_id, employee.user_id, employee)
        assert result.error.code == "ASSIGNEE_NOT_FOUND"

    def test_rejected_commit_creates_no_row(
        self, repo, legacy_goal, employee, head, clock, recorder
    ):
        racing = _CommentLandsFirst(repo, recorder, head)
        tracker = AssigneeCompletionTracker(
            racing, racing, racing, clock=clock, recorder=recorder
        )

        result = tracker.complete_assignee_task(legacy_goal.goal_id, employee.user_id, employee)

        assert result.error.kind == WorkflowErrorKind.CONFLICT
        assert repo.list_assignees(legacy_goal.goal_id) == []
        assert repo.load_goal(legacy_goal.goal_id).version == legacy_goal.version + 1
