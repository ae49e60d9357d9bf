"""
Store and sink ports (``pdca_kernel.domain.ports``).

Responsibility
--------------
Pluggable interfaces the workflow services consume.  Adapters live in
``pdca_kernel.stores`` (in-memory, SQLAlchemy) and
``pdca_kernel.services.notifications``.

Contract shared by every mutating store method
----------------------------------------------
* Takes the ``expected_version`` of the goal snapshot the caller
  validated against.
* Atomically re-checks the version, applies the change, appends the
  history entry (if any) and bumps the version by one.
* Raises ``OptimisticLockError`` on a version mismatch,
  ``GoalNotFoundError`` if the goal vanished, and
  ``StoreUnavailableError`` on timeouts / connection loss.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Protocol
from uuid import UUID

from pdca_kernel.domain.goal import (
    Goal,
    GoalAssignee,
    GoalDates,
    GoalStateChange,
    GoalTask,
    PdcaPhase,
)
from pdca_kernel.domain.history import WorkflowHistoryEntry


class GoalStore(Protocol):
    """Load and commit the goal aggregate."""

    def load_goal(self, goal_id: UUID) -> Goal | None:
        """Return the current snapshot, or None if the goal does not exist."""
        ...

    def create_goal(self, goal: Goal, assignee_ids: Iterable[UUID] = ()) -> Goal:
        """Insert the goal, its seed history and its first assignee rows together.

        Assignee rows are stamped with the owner and ``goal.created_at``.
        """
        ...

    def commit_transition(
        self,
        goal_id: UUID,
        expected_version: int,
        change: GoalStateChange,
        entry: WorkflowHistoryEntry,
    ) -> Goal:
        """Write status/previous_status and append ``entry``."""
        ...

    def append_history(
        self,
        goal_id: UUID,
        expected_version: int,
        entry: WorkflowHistoryEntry,
        *,
        dates: GoalDates | None = None,
    ) -> Goal:
        """Append ``entry`` (and write ``dates`` if given) without a status change."""
        ...


class TaskStore(Protocol):
    def list_tasks(
        self,
        goal_id: UUID,
        phase: PdcaPhase | None = None,
    ) -> list[GoalTask]:
        """Tasks of a goal in insertion order, optionally filtered by phase."""
        ...

    def get_task(self, task_id: UUID) -> GoalTask | None:
        ...

    def add_task(self, task: GoalTask) -> GoalTask:
        ...

    def update_task(
        self,
        task: GoalTask,
        expected_goal_version: int,
        entry: WorkflowHistoryEntry,
    ) -> tuple[GoalTask, Goal]:
        """Replace the task row and append ``entry`` to its goal."""
        ...

    def delete_task(
        self,
        task_id: UUID,
        expected_goal_version: int,
        entry: WorkflowHistoryEntry,
    ) -> Goal:
        """Remove the task row and append ``entry`` to its goal."""
        ...


class AssigneeStore(Protocol):
    def list_assignees(self, goal_id: UUID) -> list[GoalAssignee]:
        ...

    def add_assignees(
        self,
        goal_id: UUID,
        user_ids: Iterable[UUID],
        assigned_by: UUID,
        assigned_at: datetime,
        *,
        expected_version: int | None = None,
        entry: WorkflowHistoryEntry | None = None,
    ) -> list[GoalAssignee]:
        """Add rows for users not yet assigned; existing rows are left alone.

        When ``entry`` is given the append is version-checked like any
        other goal mutation.
        """
        ...

    def set_assignee_completion(
        self,
        goal_id: UUID,
        user_id: UUID,
        notes: str | None,
        *,
        completed_at: datetime,
        expected_version: int,
        entry: WorkflowHistoryEntry,
        create_missing_by: UUID | None = None,
    ) -> GoalAssignee:
        """Flip the row to completed and append ``entry`` in one commit.

        With ``create_missing_by`` a missing row is first inserted (assigned
        by that user) in the same commit; legacy single-assignee goals.
        """
        ...


class PermissionFactsProvider(Protocol):
    def department_permissions_of(self, user_id: UUID) -> frozenset[str]:
        ...


class NotificationSink(Protocol):
    """Fan-out for committed history entries.  Best-effort."""

    def notify(self, goal: Goal, entry: WorkflowHistoryEntry, actor_id: UUID) -> None:
        ...
