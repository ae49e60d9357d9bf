"""
pdca_kernel.services.workflow_engine -- Goal status transition orchestrator.

Responsibility:
    Accept a status-change request from an actor, validate it against the
    transition table, the permission evaluator and the phase gate, then
    commit the new status together with its history entry and notify.

Architecture position:
    Kernel > Services -- imperative shell.  Calls pure domain/engine
    functions for every decision; all I/O goes through the store ports.

Invariants enforced:
    - Validation order is fixed: existence, legality, permission, phase
      gate.  The first failing step decides the result.
    - The phase gate (and the task store) is only consulted for forward
      progressions.
    - ``previous_status`` is written when entering On Hold and cleared on
      every other move.
    - Status and its history entry commit in one version-checked store
      call; a stale snapshot never overwrites a newer one.

Failure modes (returned as ``WorkflowResult``, never raised):
    - NOT_FOUND          -- goal missing (at load or at commit).
    - ILLEGAL_TRANSITION -- pair not in the transition table.
    - FORBIDDEN          -- permission evaluator denied.
    - PHASE_INCOMPLETE   -- open tasks in the phase being left.
    - CONFLICT           -- version moved on since the snapshot.
      No automatic retry.
    - UNAVAILABLE        -- store timeout / connection loss.  Retryable.
"""

from __future__ import annotations

from uuid import UUID

from pdca_engines.permissions import can_transition
from pdca_engines.phase_gate import evaluate_phase_gate, phase_incomplete_message
from pdca_kernel.domain.clock import Clock, SystemClock
from pdca_kernel.domain.goal import (
    Actor,
    GoalStateChange,
    GoalStatus,
    PermissionFacts,
)
from pdca_kernel.domain.ports import (
    AssigneeStore,
    GoalStore,
    NotificationSink,
    PermissionFactsProvider,
    TaskStore,
)
from pdca_kernel.domain.results import WorkflowErrorKind, WorkflowResult
from pdca_kernel.domain.transitions import is_legal_transition
from pdca_kernel.logging_config import LogContext, get_logger
from pdca_kernel.services.history_recorder import HistoryRecorder
from pdca_kernel.services.notifications import notify_safely
from pdca_kernel.services.outcomes import (
    STORE_FAILURES,
    failure_from_store_error,
    forbidden,
    goal_not_found,
)

logger = get_logger("services.workflow_engine")

TRANSITION_FORBIDDEN_MESSAGE = "You don't have permission to change this goal's status"


def _status_label(status: GoalStatus | str) -> str:
    return status.value if isinstance(status, GoalStatus) else str(status)


class WorkflowEngine:
    """Validates and commits goal status transitions."""

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

    def request_transition(
        self,
        goal_id: UUID,
        target_status: GoalStatus | str,
        actor: Actor,
        new_assignee_id: UUID | None = None,
        comment: str | None = None,
    ) -> WorkflowResult:
        """Move ``goal_id`` to ``target_status`` on behalf of ``actor``."""
        with LogContext.bind(goal_id=str(goal_id), actor_id=str(actor.user_id)):
            logger.info(
                "workflow_transition_requested",
                extra={"target_status": _status_label(target_status)},
            )
            try:
                result = self._request_transition(
                    goal_id, target_status, actor, new_assignee_id, comment
                )
            except STORE_FAILURES as exc:
                result = failure_from_store_error(exc)

            if not result.ok:
                logger.info(
                    "workflow_transition_rejected",
                    extra={
                        "target_status": _status_label(target_status),
                        "error_kind": result.error.kind.value,
                        "error_code": result.error.code,
                    },
                )
            return result

    def _request_transition(
        self,
        goal_id: UUID,
        target_status: GoalStatus | str,
        actor: Actor,
        new_assignee_id: UUID | None,
        comment: str | None,
    ) -> WorkflowResult:
        goal = self._goals.load_goal(goal_id)
        if goal is None:
            return goal_not_found(goal_id)

        from_status = goal.status
        if not is_legal_transition(from_status, target_status):
            return WorkflowResult.failure(
                WorkflowErrorKind.ILLEGAL_TRANSITION,
                f"Invalid status transition from {from_status.value} "
                f"to {_status_label(target_status)}",
            )
        target = GoalStatus(target_status)

        decision = can_transition(
            actor,
            goal,
            self._facts_for(actor),
            self._assignees.list_assignees(goal_id),
            target,
        )
        if not decision.allowed:
            return forbidden(TRANSITION_FORBIDDEN_MESSAGE)

        gate = evaluate_phase_gate(
            from_status,
            target,
            lambda phase: self._tasks.list_tasks(goal_id, phase),
        )
        if not gate.passed:
            return WorkflowResult.failure(
                WorkflowErrorKind.PHASE_INCOMPLETE,
                phase_incomplete_message(from_status, target, gate.blocking_tasks),
                blocking_tasks=gate.blocking_tasks,
            )

        change = GoalStateChange(
            status=target,
            previous_status=from_status if target == GoalStatus.ON_HOLD else None,
            current_assignee_id=new_assignee_id,
        )
        entry = self._recorder.status_change(
            actor,
            from_status,
            target,
            comment,
            previous_status=change.previous_status,
        )
        updated = self._goals.commit_transition(
            goal_id, goal.version, change, entry
        )

        logger.info(
            "workflow_transition_committed",
            extra={
                "from_status": from_status.value,
                "to_status": target.value,
                "version": updated.version,
                "permission_basis": decision.basis.value,
                "gate_consulted": gate.consulted,
            },
        )
        notify_safely(self._notifier, updated, entry, actor.user_id)
        return WorkflowResult.success(updated)

    def _facts_for(self, actor: Actor) -> PermissionFacts:
        if actor.is_admin:
            return PermissionFacts()
        return PermissionFacts(
            department_permissions=self._permissions.department_permissions_of(
                actor.user_id
            )
        )

