"""
pdca_kernel.stores.in_memory -- Thread-safe in-memory goal repository.

Responsibility:
    Implements every store port (GoalStore, TaskStore, AssigneeStore,
    PermissionFactsProvider) over plain dicts.  Used by tests, demos and
    the default configuration.

Invariants enforced:
    - One ``threading.Lock`` serializes every read and commit, so a
      version check and the write it guards are atomic.
    - Every versioned mutation bumps the goal version by exactly one and
      appends its history entry in the same critical section.
    - Snapshots handed out are frozen dataclasses; callers cannot reach
      the stored state.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from pdca_kernel.domain.goal import (
    AssigneeTaskStatus,
    Goal,
    GoalAssignee,
    GoalDates,
    GoalStateChange,
    GoalTask,
    PdcaPhase,
)
from pdca_kernel.domain.history import WorkflowHistoryEntry
from pdca_kernel.exceptions import (
    AssigneeNotFoundError,
    GoalNotFoundError,
    OptimisticLockError,
    TaskNotFoundError,
)


class InMemoryGoalRepository:
    """All goal ports in one object, guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._goals: dict[UUID, Goal] = {}
        self._tasks: dict[UUID, GoalTask] = {}
        self._assignees: dict[UUID, list[GoalAssignee]] = {}
        self._department_grants: dict[UUID, dict[str, UUID | None]] = {}

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _checked(self, goal_id: UUID, expected_version: int) -> Goal:
        goal = self._goals.get(goal_id)
        if goal is None:
            raise GoalNotFoundError(str(goal_id))
        if goal.version != expected_version:
            raise OptimisticLockError(
                "Goal", str(goal_id), expected_version, goal.version
            )
        return goal

    def _bump(
        self,
        goal: Goal,
        entry: WorkflowHistoryEntry,
        **changes: object,
    ) -> Goal:
        updated = replace(
            goal,
            workflow_history=(*goal.workflow_history, entry),
            version=goal.version + 1,
            updated_at=entry.timestamp,
            **changes,
        )
        self._goals[goal.goal_id] = updated
        return updated

    def _insert_assignees(
        self,
        goal_id: UUID,
        user_ids: Iterable[UUID],
        assigned_by: UUID,
        assigned_at: datetime,
    ) -> list[GoalAssignee]:
        rows = self._assignees.setdefault(goal_id, [])
        existing = {a.user_id for a in rows}
        added: list[GoalAssignee] = []
        for user_id in user_ids:
            if user_id in existing:
                continue
            row = GoalAssignee(
                goal_id=goal_id,
                user_id=user_id,
                assigned_by=assigned_by,
                assigned_at=assigned_at,
            )
            rows.append(row)
            existing.add(user_id)
            added.append(row)
        return added

    # ------------------------------------------------------------------
    # GoalStore
    # ------------------------------------------------------------------

    def load_goal(self, goal_id: UUID) -> Goal | None:
        with self._lock:
            return self._goals.get(goal_id)

    def create_goal(self, goal: Goal, assignee_ids: Iterable[UUID] = ()) -> Goal:
        assignee_ids = tuple(assignee_ids)
        if assignee_ids and goal.created_at is None:
            raise ValueError("Goal needs created_at to stamp its assignee rows")
        with self._lock:
            if goal.goal_id in self._goals:
                raise ValueError(f"Goal {goal.goal_id} already exists")
            self._goals[goal.goal_id] = goal
            self._insert_assignees(
                goal.goal_id, assignee_ids, goal.owner_id, goal.created_at
            )
            return goal

    def commit_transition(
        self,
        goal_id: UUID,
        expected_version: int,
        change: GoalStateChange,
        entry: WorkflowHistoryEntry,
    ) -> Goal:
        with self._lock:
            goal = self._checked(goal_id, expected_version)
            assignee = (
                change.current_assignee_id
                if change.current_assignee_id is not None
                else goal.current_assignee_id
            )
            return self._bump(
                goal,
                entry,
                status=change.status,
                previous_status=change.previous_status,
                current_assignee_id=assignee,
            )

    def append_history(
        self,
        goal_id: UUID,
        expected_version: int,
        entry: WorkflowHistoryEntry,
        *,
        dates: GoalDates | None = None,
    ) -> Goal:
        with self._lock:
            goal = self._checked(goal_id, expected_version)
            return self._bump(goal, entry, dates=dates or goal.dates)

    # ------------------------------------------------------------------
    # TaskStore
    # ------------------------------------------------------------------

    def list_tasks(
        self,
        goal_id: UUID,
        phase: PdcaPhase | None = None,
    ) -> list[GoalTask]:
        with self._lock:
            return [
                t
                for t in self._tasks.values()
                if t.goal_id == goal_id and (phase is None or t.pdca_phase == phase)
            ]

    def get_task(self, task_id: UUID) -> GoalTask | None:
        with self._lock:
            return self._tasks.get(task_id)

    def add_task(self, task: GoalTask) -> GoalTask:
        with self._lock:
            if task.goal_id not in self._goals:
                raise GoalNotFoundError(str(task.goal_id))
            order = max(
                (t.order_index for t in self._tasks.values() if t.goal_id == task.goal_id),
                default=-1,
            )
            stored = replace(task, order_index=order + 1)
            self._tasks[task.task_id] = stored
            return stored

    def update_task(
        self,
        task: GoalTask,
        expected_goal_version: int,
        entry: WorkflowHistoryEntry,
    ) -> tuple[GoalTask, Goal]:
        with self._lock:
            current = self._tasks.get(task.task_id)
            if current is None:
                raise TaskNotFoundError(str(task.task_id))
            goal = self._checked(current.goal_id, expected_goal_version)
            stored = replace(task, goal_id=current.goal_id, order_index=current.order_index)
            self._tasks[task.task_id] = stored
            return stored, self._bump(goal, entry)

    def delete_task(
        self,
        task_id: UUID,
        expected_goal_version: int,
        entry: WorkflowHistoryEntry,
    ) -> Goal:
        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                raise TaskNotFoundError(str(task_id))
            goal = self._checked(current.goal_id, expected_goal_version)
            del self._tasks[task_id]
            return self._bump(goal, entry)

    # ------------------------------------------------------------------
    # AssigneeStore
    # ------------------------------------------------------------------

    def list_assignees(self, goal_id: UUID) -> list[GoalAssignee]:
        with self._lock:
            return list(self._assignees.get(goal_id, ()))

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
        with self._lock:
            if entry is not None:
                goal = self._checked(
                    goal_id,
                    expected_version if expected_version is not None else -1,
                )
            elif goal_id not in self._goals:
                raise GoalNotFoundError(str(goal_id))

            added = self._insert_assignees(goal_id, user_ids, assigned_by, assigned_at)
            if entry is not None:
                self._bump(goal, entry)
            return added

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
        with self._lock:
            goal = self._checked(goal_id, expected_version)
            rows = self._assignees.setdefault(goal_id, [])
            if create_missing_by is not None:
                self._insert_assignees(goal_id, [user_id], create_missing_by, completed_at)
            for i, row in enumerate(rows):
                if row.user_id == user_id:
                    break
            else:
                raise AssigneeNotFoundError(str(goal_id), str(user_id))

            completed = replace(
                row,
                task_status=AssigneeTaskStatus.COMPLETED,
                completed_at=completed_at,
                completion_notes=notes,
            )
            rows[i] = completed
            self._bump(goal, entry)
            return completed

    # ------------------------------------------------------------------
    # PermissionFactsProvider
    # ------------------------------------------------------------------

    def department_permissions_of(self, user_id: UUID) -> frozenset[str]:
        with self._lock:
            return frozenset(self._department_grants.get(user_id, {}))

    def department_grants_of(self, user_id: UUID) -> dict[str, UUID | None]:
        """Department -> granting user, for audit screens."""
        with self._lock:
            return dict(self._department_grants.get(user_id, {}))

    def grant_department_permission(
        self,
        user_id: UUID,
        department: str,
        granted_by: UUID | None = None,
    ) -> None:
        """Idempotent; a repeated grant keeps the first grantor."""
        with self._lock:
            grants = self._department_grants.setdefault(user_id, {})
            grants.setdefault(department, granted_by)

    def revoke_department_permission(self, user_id: UUID, department: str) -> None:
        with self._lock:
            self._department_grants.get(user_id, {}).pop(department, None)
