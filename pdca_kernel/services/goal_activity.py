"""
pdca_kernel.services.goal_activity -- Goal activity outside status changes.

Responsibility:
    Goal creation, comments, assignee management, planned dates and the
    lifecycle of individual phase tasks.  Every operation that changes
    the aggregate appends exactly one history entry (creation may append
    several) through a version-checked store call, then notifies.

Architecture position:
    Kernel > Services -- imperative shell, same shape as WorkflowEngine.

Invariants enforced:
    - Only Admin and Head actors create goals; the owner is assigned to
      the goal on creation.
    - A start date may never fall after the (effective) target date.
    - The first target date is recorded as ``TargetDateSet``; a change of
      an existing target is stored as ``adjusted_target_date`` and
      recorded as ``TargetDateUpdated``, so the original target survives.
    - A task assigned to someone else cannot be completed by the actor;
      an unassigned task is assigned to whoever completes it.
    - ``update_task`` edits title, assignment or status but never
      completes a task; completion always goes through ``complete_task``.
      A completed task keeps its status.
    - Deleting a task is reserved for the goal owner, goal assignees,
      Admins and the department Head; the task's own assignee alone may not.
    - Re-completing a completed task, re-starting an in-progress task,
      editing a task to its current values, re-setting an unchanged date
      and re-assigning existing assignees are no-op successes without
      history.

Failure modes (returned as ``WorkflowResult``):
    - NOT_FOUND, FORBIDDEN, VALIDATION, CONFLICT, UNAVAILABLE.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import date
from uuid import UUID, uuid4

from pdca_engines.permissions import (
    can_comment,
    can_delete_task,
    can_edit_goal,
    can_manage_assignees,
    can_work_task,
)
from pdca_kernel.domain.clock import Clock, SystemClock
from pdca_kernel.domain.goal import (
    Actor,
    Goal,
    GoalDates,
    GoalStatus,
    GoalTask,
    PdcaPhase,
    PermissionFacts,
    TaskStatus,
)
from pdca_kernel.domain.history import WorkflowHistoryEntry
from pdca_kernel.domain.ports import (
    AssigneeStore,
    GoalStore,
    NotificationSink,
    PermissionFactsProvider,
    TaskStore,
)
from pdca_kernel.domain.results import WorkflowErrorKind, WorkflowResult
from pdca_kernel.logging_config import LogContext, get_logger
from pdca_kernel.services.history_recorder import HistoryRecorder
from pdca_kernel.services.notifications import notify_safely
from pdca_kernel.services.outcomes import (
    STORE_FAILURES,
    failure_from_store_error,
    forbidden,
    goal_not_found,
    invalid,
)

logger = get_logger("services.goal_activity")

CREATE_FORBIDDEN_MESSAGE = (
    "Access denied. Only department heads and admins can create goals."
)
EDIT_FORBIDDEN_MESSAGE = "You don't have permission to edit this goal"
COMMENT_FORBIDDEN_MESSAGE = "You don't have permission to comment on this goal"
ASSIGN_FORBIDDEN_MESSAGE = (
    "Only admins, department heads, and users with department permissions "
    "can assign goals"
)
TASK_FORBIDDEN_MESSAGE = (
    "Only goal owners, assignees, admins, and department heads can work on tasks"
)
TASK_UPDATE_FORBIDDEN_MESSAGE = "You don't have permission to update this task"
TASK_DELETE_FORBIDDEN_MESSAGE = "You don't have permission to delete this task"
COMPLETE_THROUGH_COMPLETE_TASK_MESSAGE = "Tasks are completed with complete_task"
OWN_TASKS_ONLY_MESSAGE = "You can only complete your own tasks"
DATE_ORDER_MESSAGE = "Start date cannot be later than target date"


def _task_not_found(task_id: UUID) -> WorkflowResult:
    return WorkflowResult.failure(
        WorkflowErrorKind.NOT_FOUND,
        f"Task not found: {task_id}",
        code="TASK_NOT_FOUND",
    )


def effective_target_date(dates: GoalDates) -> date | None:
    return dates.adjusted_target_date or dates.target_date


class GoalActivityService:
    """Creation, comments, assignment, dates and phase tasks of goals."""

    def __init__(
        self,
        goals: GoalStore,
        tasks: TaskStore,
        assignees: AssigneeStore,
        permissions: PermissionFactsProvider,
        notifier: NotificationSink | None = None,
        clock: Clock | None = None,
        recorder: HistoryRecorder | None = None,
    ) -> None:
        self._goals = goals
        self._tasks = tasks
        self._assignees = assignees
        self._permissions = permissions
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._recorder = recorder or HistoryRecorder(self._clock)

    # ------------------------------------------------------------------
    # Shared plumbing
    # ------------------------------------------------------------------

    def _run(
        self,
        event: str,
        actor: Actor,
        goal_id: UUID | None,
        operation: Callable[[], WorkflowResult],
    ) -> WorkflowResult:
        """Run ``operation`` with log context and the store-error boundary."""
        with LogContext.bind(
            goal_id=str(goal_id) if goal_id else None,
            actor_id=str(actor.user_id),
        ):
            try:
                result = operation()
            except STORE_FAILURES as exc:
                result = failure_from_store_error(exc)
            if result.ok:
                logger.info(f"{event}_succeeded")
            else:
                logger.info(
                    f"{event}_rejected",
                    extra={
                        "error_kind": result.error.kind.value,
                        "error_code": result.error.code,
                    },
                )
            return result

    def _facts_for(self, actor: Actor) -> PermissionFacts:
        return PermissionFacts(
            department_permissions=self._permissions.department_permissions_of(
                actor.user_id
            )
        )

    def _committed(
        self,
        goal: Goal,
        entry: WorkflowHistoryEntry,
        actor: Actor,
        **extras: object,
    ) -> WorkflowResult:
        notify_safely(self._notifier, goal, entry, actor.user_id)
        return WorkflowResult.success(goal, **extras)

    # ------------------------------------------------------------------
    # Goal creation
    # ------------------------------------------------------------------

    def create_goal(
        self,
        actor: Actor,
        subject: str,
        department: str,
        *,
        start_date: date | None = None,
        target_date: date | None = None,
        assignee_ids: Iterable[UUID] = (),
        goal_id: UUID | None = None,
    ) -> WorkflowResult:
        """Create a goal in Plan, owned by ``actor``."""
        return self._run(
            "goal_create",
            actor,
            goal_id,
            lambda: self._create_goal(
                actor,
                subject,
                department,
                start_date,
                target_date,
                tuple(assignee_ids),
                goal_id or uuid4(),
            ),
        )

    def _create_goal(
        self,
        actor: Actor,
        subject: str,
        department: str,
        start_date: date | None,
        target_date: date | None,
        assignee_ids: tuple[UUID, ...],
        goal_id: UUID,
    ) -> WorkflowResult:
        if not (actor.is_admin or actor.is_head):
            return forbidden(CREATE_FORBIDDEN_MESSAGE)
        if not subject or not subject.strip():
            return invalid("Subject is required")
        if not department or not department.strip():
            return invalid("Department is required")
        if start_date and target_date and start_date > target_date:
            return invalid(DATE_ORDER_MESSAGE)

        history = (self._recorder.goal_created(actor),)
        if start_date:
            history = self._recorder.append(
                history,
                self._recorder.start_date_set(
                    actor, start_date, f"Owner set start date to {start_date.isoformat()}"
                ),
            )
        if target_date:
            history = self._recorder.append(
                history,
                self._recorder.target_date_set(
                    actor, target_date, f"Owner set target date to {target_date.isoformat()}"
                ),
            )
        extra_ids = tuple(dict.fromkeys(u for u in assignee_ids if u != actor.user_id))
        if extra_ids:
            history = self._recorder.append(
                history, self._recorder.assignment(actor, extra_ids)
            )

        now = self._clock.now()
        # Goal row, seed history and assignee rows commit together.
        goal = self._goals.create_goal(
            Goal(
                goal_id=goal_id,
                owner_id=actor.user_id,
                department=department.strip(),
                subject=subject.strip(),
                status=GoalStatus.PLAN,
                workflow_history=history,
                version=1,
                dates=GoalDates(start_date=start_date, target_date=target_date),
                created_at=now,
                updated_at=now,
            ),
            assignee_ids=(actor.user_id, *extra_ids),
        )
        return self._committed(goal, history[0], actor)

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(self, goal_id: UUID, actor: Actor, text: str) -> WorkflowResult:
        return self._run(
            "goal_comment", actor, goal_id, lambda: self._add_comment(goal_id, actor, text)
        )

    def _add_comment(self, goal_id: UUID, actor: Actor, text: str) -> WorkflowResult:
        if not text or not text.strip():
            return invalid("Comment cannot be empty")
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)
        assignees = self._assignees.list_assignees(goal_id)
        if not can_comment(actor, goal, self._facts_for(actor), assignees):
            return forbidden(COMMENT_FORBIDDEN_MESSAGE)

        entry = self._recorder.comment(actor, text.strip())
        updated = self._goals.append_history(goal_id, goal.version, entry)
        return self._committed(updated, entry, actor)

    # ------------------------------------------------------------------
    # Assignees
    # ------------------------------------------------------------------

    def assign_assignees(
        self,
        goal_id: UUID,
        actor: Actor,
        user_ids: Iterable[UUID],
    ) -> WorkflowResult:
        requested = tuple(dict.fromkeys(user_ids))
        return self._run(
            "goal_assign",
            actor,
            goal_id,
            lambda: self._assign_assignees(goal_id, actor, requested),
        )

    def _assign_assignees(
        self,
        goal_id: UUID,
        actor: Actor,
        requested: tuple[UUID, ...],
    ) -> WorkflowResult:
        if not requested:
            return invalid("At least one assignee is required")
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)
        if not can_manage_assignees(actor, goal, self._facts_for(actor)):
            return forbidden(ASSIGN_FORBIDDEN_MESSAGE)

        existing = {a.user_id for a in self._assignees.list_assignees(goal_id)}
        new_ids = tuple(u for u in requested if u not in existing)
        if not new_ids:
            return WorkflowResult.success(goal)

        entry = self._recorder.assignment(actor, new_ids)
        self._assignees.add_assignees(
            goal_id,
            new_ids,
            actor.user_id,
            self._clock.now(),
            expected_version=goal.version,
            entry=entry,
        )
        updated = self._goals.load_goal(goal_id) or goal
        return self._committed(updated, entry, actor)

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def set_start_date(
        self,
        goal_id: UUID,
        actor: Actor,
        new_start_date: date,
        comment: str = "",
    ) -> WorkflowResult:
        return self._run(
            "goal_start_date",
            actor,
            goal_id,
            lambda: self._set_start_date(goal_id, actor, new_start_date, comment),
        )

    def _set_start_date(
        self,
        goal_id: UUID,
        actor: Actor,
        new_start_date: date,
        comment: str,
    ) -> WorkflowResult:
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)
        if not can_edit_goal(actor, goal, self._facts_for(actor)):
            return forbidden(EDIT_FORBIDDEN_MESSAGE)
        target = effective_target_date(goal.dates)
        if target is not None and new_start_date > target:
            return invalid(DATE_ORDER_MESSAGE)
        if goal.dates.start_date == new_start_date:
            return WorkflowResult.success(goal)

        entry = self._recorder.start_date_set(actor, new_start_date, comment)
        updated = self._goals.append_history(
            goal_id,
            goal.version,
            entry,
            dates=replace(goal.dates, start_date=new_start_date),
        )
        return self._committed(updated, entry, actor)

    def set_target_date(
        self,
        goal_id: UUID,
        actor: Actor,
        new_target_date: date,
        comment: str = "",
    ) -> WorkflowResult:
        return self._run(
            "goal_target_date",
            actor,
            goal_id,
            lambda: self._set_target_date(goal_id, actor, new_target_date, comment),
        )

    def _set_target_date(
        self,
        goal_id: UUID,
        actor: Actor,
        new_target_date: date,
        comment: str,
    ) -> WorkflowResult:
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)
        if not can_edit_goal(actor, goal, self._facts_for(actor)):
            return forbidden(EDIT_FORBIDDEN_MESSAGE)
        start = goal.dates.start_date
        if start is not None and start > new_target_date:
            return invalid(DATE_ORDER_MESSAGE)

        current = effective_target_date(goal.dates)
        if current == new_target_date:
            return WorkflowResult.success(goal)
        if current is None:
            entry = self._recorder.target_date_set(actor, new_target_date, comment)
            dates = replace(goal.dates, target_date=new_target_date)
        else:
            entry = self._recorder.target_date_updated(
                actor, current, new_target_date, comment
            )
            dates = replace(goal.dates, adjusted_target_date=new_target_date)

        updated = self._goals.append_history(goal_id, goal.version, entry, dates=dates)
        return self._committed(updated, entry, actor)

    # ------------------------------------------------------------------
    # Phase tasks
    # ------------------------------------------------------------------

    def add_task(
        self,
        goal_id: UUID,
        actor: Actor,
        title: str,
        pdca_phase: PdcaPhase,
        *,
        assigned_to: UUID | None = None,
        assignee_name: str | None = None,
        task_id: UUID | None = None,
    ) -> WorkflowResult:
        """Add a task to one phase of the goal.  No history entry."""
        return self._run(
            "goal_task_add",
            actor,
            goal_id,
            lambda: self._add_task(
                goal_id,
                actor,
                title,
                PdcaPhase(pdca_phase),
                assigned_to,
                assignee_name,
                task_id or uuid4(),
            ),
        )

    def _add_task(
        self,
        goal_id: UUID,
        actor: Actor,
        title: str,
        phase: PdcaPhase,
        assigned_to: UUID | None,
        assignee_name: str | None,
        task_id: UUID,
    ) -> WorkflowResult:
        if not title or not title.strip():
            return invalid("Task title is required")
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)
        draft = GoalTask(
            task_id=task_id,
            goal_id=goal_id,
            title=title.strip(),
            pdca_phase=phase,
            assigned_to=assigned_to,
            assignee_name=assignee_name if assigned_to else None,
            assigned_by=actor.user_id,
        )
        assignees = self._assignees.list_assignees(goal_id)
        if not can_work_task(actor, goal, draft, self._facts_for(actor), assignees):
            return forbidden(TASK_FORBIDDEN_MESSAGE)
        task = self._tasks.add_task(draft)
        return WorkflowResult.success(goal, task=task)

    def start_task(self, task_id: UUID, actor: Actor) -> WorkflowResult:
        return self._run(
            "goal_task_start", actor, None, lambda: self._start_task(task_id, actor)
        )

    def _start_task(self, task_id: UUID, actor: Actor) -> WorkflowResult:
        task = self._tasks.get_task(task_id)
        if task is None:
            return _task_not_found(task_id)
        goal = self._goals.load_goal(task.goal_id)
        if goal is None:
            return goal_not_found(task.goal_id)
        assignees = self._assignees.list_assignees(goal.goal_id)
        if not can_work_task(actor, goal, task, self._facts_for(actor), assignees):
            return forbidden(TASK_FORBIDDEN_MESSAGE)
        if not task.is_open:
            return invalid(f"Task is already {task.status.value}")
        if task.status == TaskStatus.IN_PROGRESS:
            return WorkflowResult.success(goal, task=task)

        entry = self._recorder.task_started(actor, task, task.status)
        started, updated = self._tasks.update_task(
            replace(task, status=TaskStatus.IN_PROGRESS), goal.version, entry
        )
        return self._committed(updated, entry, actor, task=started)

    def complete_task(
        self,
        task_id: UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> WorkflowResult:
        return self._run(
            "goal_task_complete",
            actor,
            None,
            lambda: self._complete_task(task_id, actor, notes),
        )

    def _complete_task(
        self,
        task_id: UUID,
        actor: Actor,
        notes: str | None,
    ) -> WorkflowResult:
        task = self._tasks.get_task(task_id)
        if task is None:
            return _task_not_found(task_id)
        goal = self._goals.load_goal(task.goal_id)
        if goal is None:
            return goal_not_found(task.goal_id)

        if task.assigned_to is not None and task.assigned_to != actor.user_id:
            return forbidden(OWN_TASKS_ONLY_MESSAGE)
        if task.assigned_to is None:
            assignees = self._assignees.list_assignees(goal.goal_id)
            if not can_work_task(actor, goal, task, self._facts_for(actor), assignees):
                return forbidden(TASK_FORBIDDEN_MESSAGE)

        if task.status == TaskStatus.COMPLETED:
            return WorkflowResult.success(goal, task=task)
        if task.status == TaskStatus.CANCELLED:
            return invalid("Task is already cancelled")

        completed_task = replace(
            task,
            status=TaskStatus.COMPLETED,
            assigned_to=actor.user_id,
            assignee_name=task.assignee_name if task.assigned_to else actor.name,
            completed_at=self._clock.now(),
            completed_by=actor.user_id,
            completion_notes=notes,
        )
        entry = self._recorder.task_completed(
            actor, task=task, assignee_id=actor.user_id, notes=notes
        )
        saved, updated = self._tasks.update_task(completed_task, goal.version, entry)
        return self._committed(updated, entry, actor, task=saved)

    def update_task(
        self,
        task_id: UUID,
        actor: Actor,
        *,
        title: str | None = None,
        status: TaskStatus | None = None,
        assigned_to: UUID | None = None,
        assignee_name: str | None = None,
    ) -> WorkflowResult:
        """Edit a task; only the arguments given are changed.

        Records one ``TaskEdited`` entry listing the fields that actually
        changed.  Reassigning stamps the actor as ``assigned_by``.
        """
        return self._run(
            "goal_task_update",
            actor,
            None,
            lambda: self._update_task(
                task_id,
                actor,
                title,
                TaskStatus(status) if status is not None else None,
                assigned_to,
                assignee_name,
            ),
        )

    def cancel_task(self, task_id: UUID, actor: Actor) -> WorkflowResult:
        """Cancelled tasks no longer block their phase."""
        return self.update_task(task_id, actor, status=TaskStatus.CANCELLED)

    def _update_task(
        self,
        task_id: UUID,
        actor: Actor,
        title: str | None,
        status: TaskStatus | None,
        assigned_to: UUID | None,
        assignee_name: str | None,
    ) -> WorkflowResult:
        if title is not None and not title.strip():
            return invalid("Task title is required")
        if status == TaskStatus.COMPLETED:
            return invalid(COMPLETE_THROUGH_COMPLETE_TASK_MESSAGE)
        task = self._tasks.get_task(task_id)
        if task is None:
            return _task_not_found(task_id)
        goal = self._goals.load_goal(task.goal_id)
        if goal is None:
            return goal_not_found(task.goal_id)
        assignees = self._assignees.list_assignees(goal.goal_id)
        if not can_work_task(actor, goal, task, self._facts_for(actor), assignees):
            return forbidden(TASK_UPDATE_FORBIDDEN_MESSAGE)

        changes: list[tuple[str, str | None]] = []
        edited = task
        if title is not None and title.strip() != task.title:
            edited = replace(edited, title=title.strip())
            changes.append(("title", edited.title))
        if status is not None and status != task.status:
            if task.status == TaskStatus.COMPLETED:
                return invalid("Task is already completed")
            edited = replace(edited, status=status)
            changes.append(("status", status.value))
        if assigned_to is not None and assigned_to != task.assigned_to:
            edited = replace(
                edited,
                assigned_to=assigned_to,
                assignee_name=assignee_name,
                assigned_by=actor.user_id,
            )
            changes.append(("assigned_to", str(assigned_to)))
        if not changes:
            return WorkflowResult.success(goal, task=task)

        entry = self._recorder.task_edited(actor, edited, changes)
        saved, updated = self._tasks.update_task(edited, goal.version, entry)
        return self._committed(updated, entry, actor, task=saved)

    def delete_task(self, task_id: UUID, actor: Actor) -> WorkflowResult:
        return self._run(
            "goal_task_delete", actor, None, lambda: self._delete_task(task_id, actor)
        )

    def _delete_task(self, task_id: UUID, actor: Actor) -> WorkflowResult:
        task = self._tasks.get_task(task_id)
        if task is None:
            return _task_not_found(task_id)
        goal = self._goals.load_goal(task.goal_id)
        if goal is None:
            return goal_not_found(task.goal_id)
        assignees = self._assignees.list_assignees(goal.goal_id)
        if not can_delete_task(actor, goal, self._facts_for(actor), assignees):
            return forbidden(TASK_DELETE_FORBIDDEN_MESSAGE)

        entry = self._recorder.task_deleted(actor, task)
        updated = self._tasks.delete_task(task_id, goal.version, entry)
        return self._committed(updated, entry, actor, task=task)
