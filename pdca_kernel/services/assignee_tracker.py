"""
pdca_kernel.services.assignee_tracker -- Per-assignee completion tracking.

Responsibility:
    Record that one assignee finished their slice of a goal.  Completion
    is personal: it flips one ``GoalAssignee`` row and appends a
    ``TaskCompleted`` history entry (``task_id`` None).

Architecture position:
    Kernel > Services.  Decisions come from pdca_engines; writes go
    through the AssigneeStore port.

Invariants enforced:
    - Idempotent: completing an already-completed row returns success
      without a new history entry or notification.
    - Row flip and history append commit together under the goal's
      version check.  For a legacy single-assignee goal the missing row is
      inserted in that same commit, so a rejected commit leaves no row.
    - Never advances the goal, even when every assignee is done.  Status
      changes only happen through ``WorkflowEngine.request_transition``.

Failure modes (returned as ``WorkflowResult``):
    - NOT_FOUND -- goal missing, or target user is not an assignee.
    - FORBIDDEN -- actor may not complete someone else's slice.
    - CONFLICT / UNAVAILABLE -- from the store commit.
"""

from __future__ import annotations

from uuid import UUID

from pdca_engines.assignments import all_assignees_complete, pending_assignee_ids
from pdca_engines.permissions import can_complete_assignee_task
from pdca_kernel.domain.clock import Clock, SystemClock
from pdca_kernel.domain.goal import Actor, PermissionFacts
from pdca_kernel.domain.ports import (
    AssigneeStore,
    GoalStore,
    NotificationSink,
    PermissionFactsProvider,
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
)

logger = get_logger("services.assignee_tracker")

OWN_TASKS_ONLY_MESSAGE = "You can only complete your own tasks"


class AssigneeCompletionTracker:
    """Marks individual assignees complete without touching goal status."""

    def __init__(
        self,
        goals: GoalStore,
        assignees: AssigneeStore,
        permissions: PermissionFactsProvider,
        notifier: NotificationSink | None = None,
        clock: Clock | None = None,
        recorder: HistoryRecorder | None = None,
    ) -> None:
        self._goals = goals
        self._assignees = assignees
        self._permissions = permissions
        self._notifier = notifier
        self._clock = clock or SystemClock()
        self._recorder = recorder or HistoryRecorder(self._clock)

    def complete_assignee_task(
        self,
        goal_id: UUID,
        assignee_user_id: UUID,
        actor: Actor,
        notes: str | None = None,
    ) -> WorkflowResult:
        with LogContext.bind(goal_id=str(goal_id), actor_id=str(actor.user_id)):
            try:
                result = self._complete(goal_id, assignee_user_id, actor, notes)
            except STORE_FAILURES as exc:
                result = failure_from_store_error(exc)
            if not result.ok:
                logger.info(
                    "assignee_completion_rejected",
                    extra={
                        "assignee_id": str(assignee_user_id),
                        "error_code": result.error.code,
                    },
                )
            return result

    def _complete(
        self,
        goal_id: UUID,
        assignee_user_id: UUID,
        actor: Actor,
        notes: str | None,
    ) -> WorkflowResult:
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)

        rows = self._assignees.list_assignees(goal_id)
        row = next((a for a in rows if a.user_id == assignee_user_id), None)
        legacy = not rows and goal.current_assignee_id == assignee_user_id
        if row is None and not legacy:
            return WorkflowResult.failure(
                WorkflowErrorKind.NOT_FOUND,
                f"User {assignee_user_id} is not an assignee of goal {goal_id}",
                code="ASSIGNEE_NOT_FOUND",
            )

        facts = PermissionFacts(
            department_permissions=self._permissions.department_permissions_of(
                actor.user_id
            )
        )
        if not can_complete_assignee_task(actor, goal, facts, assignee_user_id):
            return forbidden(OWN_TASKS_ONLY_MESSAGE)

        if row is not None and row.is_completed:
            logger.info(
                "assignee_completion_noop",
                extra={"assignee_id": str(assignee_user_id)},
            )
            return WorkflowResult.success(goal, assignee=row)

        entry = self._recorder.task_completed(
            actor, assignee_id=assignee_user_id, notes=notes
        )
        # Legacy single-assignee goal: the row is created in the same commit.
        completed = self._assignees.set_assignee_completion(
            goal_id,
            assignee_user_id,
            notes,
            completed_at=self._clock.now(),
            expected_version=goal.version,
            entry=entry,
            create_missing_by=goal.owner_id if row is None else None,
        )
        updated = self._goals.load_goal(goal_id) or goal

        logger.info(
            "assignee_completion_committed",
            extra={
                "assignee_id": str(assignee_user_id),
                "version": updated.version,
            },
        )
        notify_safely(self._notifier, updated, entry, actor.user_id)
        return WorkflowResult.success(updated, assignee=completed)

    def all_assignees_complete(self, goal_id: UUID) -> bool:
        """Informational only; never used to move the goal."""
        return all_assignees_complete(self._assignees.list_assignees(goal_id))

    def pending_assignees(self, goal_id: UUID) -> tuple[UUID, ...]:
        return pending_assignee_ids(self._assignees.list_assignees(goal_id))

