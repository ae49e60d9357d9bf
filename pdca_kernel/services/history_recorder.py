"""
pdca_kernel.services.history_recorder -- Workflow history entry factory.

Responsibility:
    The single place that builds ``WorkflowHistoryEntry`` objects.  Stamps
    each entry with a fresh ``entry_id``, the injected clock's time, and
    the acting user's id and display name.

Architecture position:
    Kernel > Services.  Imports domain/ only; performs no store I/O.

Invariants enforced:
    - History is append-only: ``append`` returns a new tuple and never
      mutates the one it was given.
    - Every timestamp comes from the injected ``Clock``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from uuid import UUID, uuid4

from pdca_kernel.domain.clock import Clock, SystemClock
from pdca_kernel.domain.goal import Actor, GoalStatus, GoalTask, TaskStatus
from pdca_kernel.domain.history import (
    Assignment,
    CommentAdded,
    HistoryAction,
    StartDateSet,
    StatusChange,
    TargetDateSet,
    TargetDateUpdated,
    TaskCompleted,
    TaskDeleted,
    TaskEdited,
    TaskStarted,
    WorkflowHistoryEntry,
)

GOAL_CREATED_COMMENT = "Goal created and entered Plan phase"


def default_status_comment(from_status: GoalStatus, to_status: GoalStatus) -> str:
    return f"Status changed from {from_status.value} to {to_status.value}"


class HistoryRecorder:
    """Builds history entries for one clock."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()

    def _entry(self, actor: Actor, action: HistoryAction) -> WorkflowHistoryEntry:
        return WorkflowHistoryEntry(
            entry_id=uuid4(),
            timestamp=self._clock.now(),
            user_id=actor.user_id,
            user_name=actor.name,
            action=action,
        )

    # -- status ---------------------------------------------------------------

    def status_change(
        self,
        actor: Actor,
        from_status: GoalStatus,
        to_status: GoalStatus,
        comment: str | None = None,
        previous_status: GoalStatus | None = None,
    ) -> WorkflowHistoryEntry:
        """Status move; a blank comment falls back to the default text."""
        text = comment.strip() if comment else ""
        return self._entry(
            actor,
            StatusChange(
                to_status=to_status,
                from_status=from_status,
                comment=text or default_status_comment(from_status, to_status),
                previous_status=previous_status,
            ),
        )

    def goal_created(self, actor: Actor) -> WorkflowHistoryEntry:
        return self._entry(
            actor,
            StatusChange(to_status=GoalStatus.PLAN, comment=GOAL_CREATED_COMMENT),
        )

    # -- activity -------------------------------------------------------------

    def comment(self, actor: Actor, text: str) -> WorkflowHistoryEntry:
        return self._entry(actor, CommentAdded(comment=text))

    def assignment(self, actor: Actor, user_ids: Iterable[UUID]) -> WorkflowHistoryEntry:
        return self._entry(actor, Assignment(user_ids=tuple(user_ids)))

    def task_completed(
        self,
        actor: Actor,
        *,
        task: GoalTask | None = None,
        assignee_id: UUID | None = None,
        notes: str | None = None,
    ) -> WorkflowHistoryEntry:
        """Completion of a GoalTask, or of an assignee's slice when ``task`` is None."""
        return self._entry(
            actor,
            TaskCompleted(
                task_id=task.task_id if task else None,
                task_title=task.title if task else None,
                assignee_id=assignee_id,
                notes=notes,
            ),
        )

    def task_started(
        self,
        actor: Actor,
        task: GoalTask,
        previous_status: TaskStatus,
    ) -> WorkflowHistoryEntry:
        return self._entry(
            actor,
            TaskStarted(
                task_id=task.task_id,
                task_title=task.title,
                previous_status=previous_status,
            ),
        )

    def task_edited(
        self,
        actor: Actor,
        task: GoalTask,
        changes: Iterable[tuple[str, str | None]],
    ) -> WorkflowHistoryEntry:
        """``task`` is the edited version; its title is the one recorded."""
        return self._entry(
            actor,
            TaskEdited(task_id=task.task_id, task_title=task.title, changes=tuple(changes)),
        )

    def task_deleted(self, actor: Actor, task: GoalTask) -> WorkflowHistoryEntry:
        return self._entry(actor, TaskDeleted(task_id=task.task_id, task_title=task.title))

    # -- dates ----------------------------------------------------------------

    def start_date_set(
        self, actor: Actor, new_start_date: date, comment: str = ""
    ) -> WorkflowHistoryEntry:
        return self._entry(
            actor, StartDateSet(new_start_date=new_start_date, comment=comment)
        )

    def target_date_set(
        self, actor: Actor, new_target_date: date, comment: str = ""
    ) -> WorkflowHistoryEntry:
        return self._entry(
            actor, TargetDateSet(new_target_date=new_target_date, comment=comment)
        )

    def target_date_updated(
        self,
        actor: Actor,
        old_target_date: date,
        new_target_date: date,
        comment: str = "",
    ) -> WorkflowHistoryEntry:
        return self._entry(
            actor,
            TargetDateUpdated(
                old_target_date=old_target_date,
                new_target_date=new_target_date,
                comment=comment,
            ),
        )

    @staticmethod
    def append(
        history: tuple[WorkflowHistoryEntry, ...],
        entry: WorkflowHistoryEntry,
    ) -> tuple[WorkflowHistoryEntry, ...]:
        return (*history, entry)
