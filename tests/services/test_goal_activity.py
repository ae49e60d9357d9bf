"""
GoalActivityService tests: creation, comments, assignees, dates and the
lifecycle of phase tasks.
"""

from datetime import date
from uuid import uuid4

import pytest

from pdca_kernel.domain.goal import GoalStatus, PdcaPhase, TaskStatus, UserRole
from pdca_kernel.domain.history import (
    Assignment,
    CommentAdded,
    StartDateSet,
    StatusChange,
    TargetDateSet,
    TargetDateUpdated,
    TaskCompleted,
    TaskDeleted,
    TaskEdited,
    TaskStarted,
)
from pdca_kernel.domain.results import WorkflowErrorKind
from pdca_kernel.services.goal_activity import (
    ASSIGN_FORBIDDEN_MESSAGE,
    COMPLETE_THROUGH_COMPLETE_TASK_MESSAGE,
    CREATE_FORBIDDEN_MESSAGE,
    DATE_ORDER_MESSAGE,
    EDIT_FORBIDDEN_MESSAGE,
    OWN_TASKS_ONLY_MESSAGE,
    TASK_DELETE_FORBIDDEN_MESSAGE,
    TASK_FORBIDDEN_MESSAGE,
    TASK_UPDATE_FORBIDDEN_MESSAGE,
    GoalActivityService,
)
from pdca_kernel.services.history_recorder import GOAL_CREATED_COMMENT
from pdca_kernel.stores.in_memory import InMemoryGoalRepository

FEB_1 = date(2024, 2, 1)
MAR_31 = date(2024, 3, 31)
APR_30 = date(2024, 4, 30)


class TestCreateGoal:
    def test_head_creates_goal_in_plan(self, activity, head, repo):
        result = activity.create_goal(head, "  Reduce scrap rate ", "Quality")

        assert result.ok
        goal = result.goal
        assert goal.status == GoalStatus.PLAN
        assert goal.version == 1
        assert goal.owner_id == head.user_id
        assert goal.subject == "Reduce scrap rate"
        created = goal.workflow_history[0].action
        assert isinstance(created, StatusChange)
        assert created.from_status is None
        assert created.comment == GOAL_CREATED_COMMENT
        assert [a.user_id for a in repo.list_assignees(goal.goal_id)] == [head.user_id]

    def test_employee_cannot_create(self, activity, employee):
        result = activity.create_goal(employee, "Anything", "Quality")
        assert result.error.kind == WorkflowErrorKind.FORBIDDEN
        assert result.error.message == CREATE_FORBIDDEN_MESSAGE

    def test_admin_can_create(self, activity, admin):
        assert activity.create_goal(admin, "Audit", "Quality").ok

    @pytest.mark.parametrize("subject,department", [("  ", "Quality"), ("Audit", "")])
    def test_subject_and_department_required(self, activity, head, subject, department):
        result = activity.create_goal(head, subject, department)
        assert result.error.kind == WorkflowErrorKind.VALIDATION

    def test_dates_recorded_as_history(self, activity, head):
        goal = activity.create_goal(
            head, "Audit", "Quality", start_date=FEB_1, target_date=MAR_31
        ).goal

        actions = [e.action for e in goal.workflow_history]
        assert isinstance(actions[1], StartDateSet)
        assert actions[1].comment == "Owner set start date to 2024-02-01"
        assert isinstance(actions[2], TargetDateSet)
        assert actions[2].new_target_date == MAR_31
        assert (goal.dates.start_date, goal.dates.target_date) == (FEB_1, MAR_31)

    def test_start_after_target_rejected(self, activity, head):
        result = activity.create_goal(
            head, "Audit", "Quality", start_date=APR_30, target_date=MAR_31
        )
        assert result.error.message == DATE_ORDER_MESSAGE

    def test_extra_assignees_recorded_once(self, activity, head, employee, repo):
        goal = activity.create_goal(
            head, "Audit", "Quality",
            assignee_ids=[employee.user_id, head.user_id, employee.user_id],
        ).goal

        assignment = goal.workflow_history[-1].action
        assert isinstance(assignment, Assignment)
        assert assignment.user_ids == (employee.user_id,)
        assert [a.user_id for a in repo.list_assignees(goal.goal_id)] == [
            head.user_id, employee.user_id,
        ]

    def test_assignee_rows_written_by_the_goal_insert(self, head, employee, clock):
        class _NoSeparateAssignment(InMemoryGoalRepository):
            def add_assignees(self, *args, **kwargs):
                raise AssertionError("assignee rows must commit with the goal")

        store = _NoSeparateAssignment()
        service = GoalActivityService(store, store, store, store, clock=clock)

        result = service.create_goal(head, "Audit", "Quality", assignee_ids=[employee.user_id])

        assert result.ok
        rows = store.list_assignees(result.goal.goal_id)
        assert [(r.user_id, r.assigned_by, r.assigned_at) for r in rows] == [
            (head.user_id, head.user_id, clock.now()),
            (employee.user_id, head.user_id, clock.now()),
        ]


class TestComments:
    def test_owner_comments(self, activity, head, goal_factory):
        goal = goal_factory()
        result = activity.add_comment(goal.goal_id, head, "  Kickoff done  ")
        assert result.ok
        assert result.goal.workflow_history[-1].action == CommentAdded(comment="Kickoff done")
        assert result.goal.version == goal.version + 1

    def test_blank_comment_rejected(self, activity, head, goal_factory):
        result = activity.add_comment(goal_factory().goal_id, head, "   ")
        assert result.error.message == "Comment cannot be empty"

    def test_outsider_cannot_comment(self, activity, outsider, goal_factory):
        result = activity.add_comment(goal_factory().goal_id, outsider, "hi")
        assert result.error.kind == WorkflowErrorKind.FORBIDDEN


class TestAssignAssignees:
    def test_head_assigns(self, activity, head, employee, goal_factory, repo):
        goal = goal_factory()
        result = activity.assign_assignees(goal.goal_id, head, [employee.user_id])
        assert result.ok
        assert result.goal.version == goal.version + 1
        assert result.goal.workflow_history[-1].action == Assignment(
            user_ids=(employee.user_id,)
        )
        assert employee.user_id in {a.user_id for a in repo.list_assignees(goal.goal_id)}

    def test_existing_assignees_are_a_noop(self, activity, head, goal_factory, notifier):
        goal = goal_factory()
        notifier.clear()
        result = activity.assign_assignees(goal.goal_id, head, [head.user_id])
        assert result.ok
        assert result.goal.version == goal.version
        assert notifier.actions() == []

    def test_employee_cannot_assign(self, activity, employee, goal_factory):
        result = activity.assign_assignees(goal_factory().goal_id, employee, [uuid4()])
        assert result.error.message == ASSIGN_FORBIDDEN_MESSAGE

    def test_empty_request_rejected(self, activity, head, goal_factory):
        result = activity.assign_assignees(goal_factory().goal_id, head, [])
        assert result.error.kind == WorkflowErrorKind.VALIDATION


class TestDates:
    def test_first_target_then_adjustment(self, activity, head, goal_factory):
        goal = goal_factory()

        first = activity.set_target_date(goal.goal_id, head, MAR_31)
        assert isinstance(first.goal.workflow_history[-1].action, TargetDateSet)
        assert first.goal.dates.target_date == MAR_31

        second = activity.set_target_date(goal.goal_id, head, APR_30, "Supplier delay")
        action = second.goal.workflow_history[-1].action
        assert action == TargetDateUpdated(
            old_target_date=MAR_31, new_target_date=APR_30, comment="Supplier delay"
        )
        assert second.goal.dates.target_date == MAR_31
        assert second.goal.dates.adjusted_target_date == APR_30

    def test_unchanged_date_is_a_noop(self, activity, head, goal_factory):
        goal = goal_factory(target_date=MAR_31)
        result = activity.set_target_date(goal.goal_id, head, MAR_31)
        assert result.ok
        assert result.goal.version == goal.version

    def test_start_after_effective_target_rejected(self, activity, head, goal_factory):
        goal = goal_factory(target_date=MAR_31)
        activity.set_target_date(goal.goal_id, head, APR_30)
        assert activity.set_start_date(goal.goal_id, head, APR_30).ok
        result = activity.set_start_date(goal.goal_id, head, date(2024, 5, 1))
        assert result.error.message == DATE_ORDER_MESSAGE

    def test_target_before_start_rejected(self, activity, head, goal_factory):
        goal = goal_factory(start_date=MAR_31)
        result = activity.set_target_date(goal.goal_id, head, FEB_1)
        assert result.error.kind == WorkflowErrorKind.VALIDATION

    def test_assignee_cannot_edit_dates(self, activity, employee, goal_factory):
        goal = goal_factory(assignee_ids=(employee.user_id,))
        result = activity.set_start_date(goal.goal_id, employee, FEB_1)
        assert result.error.message == EDIT_FORBIDDEN_MESSAGE


class TestPhaseTasks:
    def test_add_task_keeps_order_and_adds_no_history(self, activity, head, goal_factory):
        goal = goal_factory()
        first = activity.add_task(goal.goal_id, head, "Map process", PdcaPhase.PLAN)
        second = activity.add_task(goal.goal_id, head, "Interview operators", "Plan")

        assert (first.task.order_index, second.task.order_index) == (0, 1)
        assert second.task.pdca_phase == PdcaPhase.PLAN
        assert second.goal.version == goal.version

    def test_outsider_cannot_add_task(self, activity, outsider, goal_factory):
        result = activity.add_task(goal_factory().goal_id, outsider, "x", PdcaPhase.DO)
        assert result.error.message == TASK_FORBIDDEN_MESSAGE

    def test_blank_title_rejected(self, activity, head, goal_factory):
        result = activity.add_task(goal_factory().goal_id, head, " ", PdcaPhase.DO)
        assert result.error.kind == WorkflowErrorKind.VALIDATION

    def test_start_task(self, activity, head, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)

        started = activity.start_task(task.task_id, head)
        assert started.task.status == TaskStatus.IN_PROGRESS
        assert started.goal.workflow_history[-1].action == TaskStarted(
            task_id=task.task_id, task_title=task.title, previous_status=TaskStatus.PENDING
        )

        again = activity.start_task(task.task_id, head)
        assert again.ok
        assert again.goal.version == started.goal.version

    def test_cannot_start_finished_task(self, activity, head, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN, status=TaskStatus.COMPLETED)
        assert activity.start_task(task.task_id, head).error.kind == WorkflowErrorKind.VALIDATION

    def test_missing_task(self, activity, head):
        assert activity.complete_task(uuid4(), head).error.code == "TASK_NOT_FOUND"

    def test_unassigned_task_assigned_to_completer(self, activity, head, goal_factory,
                                                    task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)

        result = activity.complete_task(task.task_id, head, notes="Signed off")

        assert result.task.status == TaskStatus.COMPLETED
        assert result.task.assigned_to == head.user_id
        assert result.task.assignee_name == head.name
        assert result.task.completed_by == head.user_id
        action = result.goal.workflow_history[-1].action
        assert action == TaskCompleted(task_id=task.task_id, task_title=task.title,
                                       assignee_id=head.user_id, notes="Signed off")

    def test_only_own_assigned_task(self, activity, head, employee, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN, assigned_to=employee.user_id,
                            assignee_name=employee.name)

        denied = activity.complete_task(task.task_id, head)
        assert denied.error.message == OWN_TASKS_ONLY_MESSAGE

        done = activity.complete_task(task.task_id, employee)
        assert done.ok
        assert done.task.assignee_name == employee.name

    def test_recomplete_is_a_noop(self, activity, head, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)
        first = activity.complete_task(task.task_id, head)
        again = activity.complete_task(task.task_id, head)
        assert again.ok
        assert again.goal.version == first.goal.version

    def test_cancelled_task_cannot_complete(self, activity, head, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN, status=TaskStatus.CANCELLED)
        assert activity.complete_task(task.task_id, head).error.kind == (
            WorkflowErrorKind.VALIDATION
        )

    def test_outsider_cannot_complete_unassigned_task(
        self, activity, outsider, goal_factory, task_factory
    ):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)
        result = activity.complete_task(task.task_id, outsider)
        assert result.error.message == TASK_FORBIDDEN_MESSAGE

    def test_other_head_completes_via_department(self, activity, make_actor, goal_factory,
                                                 task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)
        co_head = make_actor(UserRole.HEAD, name="Co Head")
        assert activity.complete_task(task.task_id, co_head).ok


class TestTaskEditing:
    """update_task / cancel_task: one TaskEdited entry per effective edit."""

    def test_cancelled_task_stops_blocking_plan(
        self, activity, engine, head, goal_factory, task_factory
    ):
        goal = goal_factory()
        task = task_factory(goal, PdcaPhase.PLAN, "Benchmark competitors")
        blocked = engine.request_transition(goal.goal_id, GoalStatus.DO, head)
        assert blocked.error.kind == WorkflowErrorKind.PHASE_INCOMPLETE

        cancelled = activity.cancel_task(task.task_id, head)

        assert cancelled.task.status == TaskStatus.CANCELLED
        assert cancelled.goal.version == goal.version + 1
        assert cancelled.goal.workflow_history[-1].action == TaskEdited(
            task_id=task.task_id,
            task_title="Benchmark competitors",
            changes=(("status", "cancelled"),),
        )
        moved = engine.request_transition(goal.goal_id, GoalStatus.DO, head)
        assert moved.ok
        assert moved.goal.status == GoalStatus.DO

    def test_only_changed_fields_are_recorded(
        self, activity, head, employee, goal_factory, task_factory
    ):
        task = task_factory(goal_factory(), PdcaPhase.DO, "Run pilot")

        result = activity.update_task(
            task.task_id,
            head,
            title=" Run pilot on line 2 ",
            assigned_to=employee.user_id,
            assignee_name=employee.name,
        )

        assert result.task.title == "Run pilot on line 2"
        assert (result.task.assigned_to, result.task.assigned_by) == (
            employee.user_id, head.user_id,
        )
        assert result.goal.workflow_history[-1].action == TaskEdited(
            task_id=task.task_id,
            task_title="Run pilot on line 2",
            changes=(
                ("title", "Run pilot on line 2"),
                ("assigned_to", str(employee.user_id)),
            ),
        )

    def test_edit_to_current_values_is_a_noop(
        self, activity, head, goal_factory, task_factory, notifier
    ):
        goal = goal_factory()
        task = task_factory(goal, PdcaPhase.PLAN)
        notifier.clear()

        result = activity.update_task(
            task.task_id, head, title=task.title, status=TaskStatus.PENDING
        )

        assert result.ok
        assert result.goal.version == goal.version
        assert notifier.actions() == []

    def test_completion_only_through_complete_task(
        self, activity, head, goal_factory, task_factory, repo
    ):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)
        result = activity.update_task(task.task_id, head, status=TaskStatus.COMPLETED)
        assert result.error.message == COMPLETE_THROUGH_COMPLETE_TASK_MESSAGE
        assert repo.get_task(task.task_id) == task

    def test_completed_task_cannot_be_cancelled(self, activity, head, goal_factory,
                                                task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN, status=TaskStatus.COMPLETED)
        result = activity.cancel_task(task.task_id, head)
        assert result.error.kind == WorkflowErrorKind.VALIDATION

    def test_cancelled_task_can_be_reopened(self, activity, head, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN, status=TaskStatus.CANCELLED)
        result = activity.update_task(task.task_id, head, status=TaskStatus.PENDING)
        assert result.task.status == TaskStatus.PENDING
        assert result.task.is_open

    def test_task_assignee_edits_stranger_does_not(
        self, activity, outsider, employee, goal_factory, task_factory
    ):
        task = task_factory(goal_factory(), PdcaPhase.DO, assigned_to=outsider.user_id)

        denied = activity.cancel_task(task.task_id, employee)
        assert denied.error.kind == WorkflowErrorKind.FORBIDDEN
        assert denied.error.message == TASK_UPDATE_FORBIDDEN_MESSAGE

        assert activity.cancel_task(task.task_id, outsider).ok

    def test_blank_title_rejected(self, activity, head, goal_factory, task_factory):
        task = task_factory(goal_factory(), PdcaPhase.PLAN)
        result = activity.update_task(task.task_id, head, title="   ")
        assert result.error.kind == WorkflowErrorKind.VALIDATION

    def test_missing_task(self, activity, head):
        result = activity.cancel_task(uuid4(), head)
        assert result.error.code == "TASK_NOT_FOUND"


class TestTaskDeletion:
    def test_owner_deletes(self, activity, head, goal_factory, task_factory, repo):
        goal = goal_factory()
        task = task_factory(goal, PdcaPhase.PLAN, "Obsolete survey")

        result = activity.delete_task(task.task_id, head)

        assert result.ok
        assert result.task == task
        assert result.goal.version == goal.version + 1
        assert result.goal.workflow_history[-1].action == TaskDeleted(
            task_id=task.task_id, task_title="Obsolete survey"
        )
        assert repo.get_task(task.task_id) is None
        assert repo.list_tasks(goal.goal_id) == []

    def test_goal_assignee_deletes(self, activity, head, employee, goal_factory,
                                   task_factory):
        goal = goal_factory(assignee_ids=(employee.user_id,))
        task = task_factory(goal, PdcaPhase.DO)
        assert activity.delete_task(task.task_id, employee).ok

    def test_task_assignee_alone_cannot_delete(
        self, activity, outsider, goal_factory, task_factory, repo
    ):
        task = task_factory(goal_factory(), PdcaPhase.DO, assigned_to=outsider.user_id)

        result = activity.delete_task(task.task_id, outsider)

        assert result.error.message == TASK_DELETE_FORBIDDEN_MESSAGE
        assert repo.get_task(task.task_id) == task

    def test_missing_task(self, activity, head):
        assert activity.delete_task(uuid4(), head).error.code == "TASK_NOT_FOUND"
