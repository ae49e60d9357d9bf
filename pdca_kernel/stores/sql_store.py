"""
pdca_kernel.stores.sql_store -- SQLAlchemy goal repository.

Responsibility:
    Implements every store port over the ORM models in
    ``pdca_kernel.models.goal``.  Each port call is one short transaction
    (``session_scope``).

Architecture position:
    Kernel > Stores.  May import from db/, models/, domain/ and
    exceptions.  Never imported by domain/ or engines.

Invariants enforced:
    - Optimistic concurrency: every versioned write starts with
      ``UPDATE goals SET version = version + 1 WHERE id = :id AND
      version = :expected``.  A rowcount of 0 is a conflict (or a missing
      goal), and the whole transaction rolls back.
    - The history insert, assignee flip and task update run in the same
      transaction as that version bump.
    - History rows get the next per-goal ``sequence`` inside the guarded
      transaction, so ordering by sequence equals commit order.

Failure modes:
    - OptimisticLockError      -- version moved on since the snapshot.
    - GoalNotFoundError / TaskNotFoundError / AssigneeNotFoundError.
    - StoreUnavailableError    -- OperationalError, pool TimeoutError or
      DisconnectionError from SQLAlchemy.
"""

from __future__ import annotations

from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from pdca_kernel.db.engine import session_scope
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
    StoreUnavailableError,
    TaskNotFoundError,
)
from pdca_kernel.logging_config import get_logger
from pdca_kernel.models.goal import (
    DepartmentPermissionModel,
    GoalAssigneeModel,
    GoalHistoryEntryModel,
    GoalModel,
    GoalTaskModel,
)

logger = get_logger("stores.sql_store")

_UNAVAILABLE = (OperationalError, PoolTimeoutError, DisconnectionError)


class SqlGoalRepository:
    """All goal ports backed by a relational database."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Generator[Session, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield session
        except _UNAVAILABLE as exc:
            logger.warning(
                "store_unavailable",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StoreUnavailableError(operation, str(exc)) from exc

    def _bump_version(
        self,
        session: Session,
        goal_id: UUID,
        expected_version: int,
        updated_at: datetime,
        **values: Any,
    ) -> None:
        result = session.execute(
            update(GoalModel)
            .where(GoalModel.id == goal_id, GoalModel.version == expected_version)
            .values(version=GoalModel.version + 1, updated_at=updated_at, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return
        actual = session.scalar(select(GoalModel.version).where(GoalModel.id == goal_id))
        if actual is None:
            raise GoalNotFoundError(str(goal_id))
        raise OptimisticLockError("Goal", str(goal_id), expected_version, actual)

    def _append_entry(
        self,
        session: Session,
        goal_id: UUID,
        entry: WorkflowHistoryEntry,
    ) -> None:
        last = session.scalar(
            select(func.max(GoalHistoryEntryModel.sequence)).where(
                GoalHistoryEntryModel.goal_id == goal_id
            )
        )
        session.add(GoalHistoryEntryModel.from_dto(entry, goal_id, (last or 0) + 1))

    def _snapshot(self, session: Session, goal_id: UUID) -> Goal:
        session.flush()
        session.expire_all()
        row = session.get(GoalModel, goal_id)
        if row is None:
            raise GoalNotFoundError(str(goal_id))
        return row.to_dto()

    @staticmethod
    def _insert_assignees(
        session: Session,
        goal_id: UUID,
        user_ids: Iterable[UUID],
        assigned_by: UUID,
        assigned_at: datetime,
    ) -> list[GoalAssigneeModel]:
        current = list(
            session.scalars(
                select(GoalAssigneeModel.user_id).where(GoalAssigneeModel.goal_id == goal_id)
            )
        )
        existing = set(current)
        position = len(current)
        added: list[GoalAssigneeModel] = []
        for user_id in user_ids:
            if user_id in existing:
                continue
            row = GoalAssigneeModel(
                goal_id=goal_id,
                user_id=user_id,
                position=position,
                assigned_by=assigned_by,
                assigned_at=assigned_at,
                task_status=AssigneeTaskStatus.PENDING.value,
            )
            session.add(row)
            added.append(row)
            existing.add(user_id)
            position += 1
        session.flush()
        return added

    @staticmethod
    def _require_goal(session: Session, goal_id: UUID) -> None:
        if session.scalar(select(GoalModel.id).where(GoalModel.id == goal_id)) is None:
            raise GoalNotFoundError(str(goal_id))

    # ------------------------------------------------------------------
    # GoalStore
    # ------------------------------------------------------------------

    def load_goal(self, goal_id: UUID) -> Goal | None:
        with self._transaction("load_goal") as session:
            row = session.get(GoalModel, goal_id)
            return row.to_dto() if row is not None else None

    def create_goal(self, goal: Goal, assignee_ids: Iterable[UUID] = ()) -> Goal:
        assignee_ids = tuple(assignee_ids)
        if assignee_ids and goal.created_at is None:
            raise ValueError("Goal needs created_at to stamp its assignee rows")
        with self._transaction("create_goal") as session:
            session.add(GoalModel.from_dto(goal))
            session.flush()
            for sequence, entry in enumerate(goal.workflow_history, start=1):
                session.add(GoalHistoryEntryModel.from_dto(entry, goal.goal_id, sequence))
            if assignee_ids:
                self._insert_assignees(
                    session, goal.goal_id, assignee_ids, goal.owner_id, goal.created_at
                )
            return self._snapshot(session, goal.goal_id)

    def commit_transition(
        self,
        goal_id: UUID,
        expected_version: int,
        change: GoalStateChange,
        entry: WorkflowHistoryEntry,
    ) -> Goal:
        values: dict[str, Any] = {
            "status": change.status.value,
            "previous_status": (
                change.previous_status.value if change.previous_status else None
            ),
        }
        if change.current_assignee_id is not None:
            values["current_assignee_id"] = change.current_assignee_id

        with self._transaction("commit_transition") as session:
            self._bump_version(
                session, goal_id, expected_version, entry.timestamp, **values
            )
            self._append_entry(session, goal_id, entry)
            return self._snapshot(session, goal_id)

    def append_history(
        self,
        goal_id: UUID,
        expected_version: int,
        entry: WorkflowHistoryEntry,
        *,
        dates: GoalDates | None = None,
    ) -> Goal:
        values: dict[str, Any] = {}
        if dates is not None:
            values.update(
                start_date=dates.start_date,
                target_date=dates.target_date,
                adjusted_target_date=dates.adjusted_target_date,
            )
        with self._transaction("append_history") as session:
            self._bump_version(
                session, goal_id, expected_version, entry.timestamp, **values
            )
            self._append_entry(session, goal_id, entry)
            return self._snapshot(session, goal_id)

    # ------------------------------------------------------------------
    # TaskStore
    # ------------------------------------------------------------------

    def list_tasks(
        self,
        goal_id: UUID,
        phase: PdcaPhase | None = None,
    ) -> list[GoalTask]:
        stmt = select(GoalTaskModel).where(GoalTaskModel.goal_id == goal_id)
        if phase is not None:
            stmt = stmt.where(GoalTaskModel.pdca_phase == PdcaPhase(phase).value)
        stmt = stmt.order_by(GoalTaskModel.order_index)
        with self._transaction("list_tasks") as session:
            return [row.to_dto() for row in session.scalars(stmt)]

    def get_task(self, task_id: UUID) -> GoalTask | None:
        with self._transaction("get_task") as session:
            row = session.get(GoalTaskModel, task_id)
            return row.to_dto() if row is not None else None

    def add_task(self, task: GoalTask) -> GoalTask:
        with self._transaction("add_task") as session:
            self._require_goal(session, task.goal_id)
            last = session.scalar(
                select(func.max(GoalTaskModel.order_index)).where(
                    GoalTaskModel.goal_id == task.goal_id
                )
            )
            row = GoalTaskModel.from_dto(task)
            row.order_index = 0 if last is None else last + 1
            session.add(row)
            session.flush()
            return row.to_dto()

    def update_task(
        self,
        task: GoalTask,
        expected_goal_version: int,
        entry: WorkflowHistoryEntry,
    ) -> tuple[GoalTask, Goal]:
        with self._transaction("update_task") as session:
            row = session.get(GoalTaskModel, task.task_id)
            if row is None:
                raise TaskNotFoundError(str(task.task_id))
            self._bump_version(
                session, row.goal_id, expected_goal_version, entry.timestamp
            )
            row.apply(task)
            self._append_entry(session, row.goal_id, entry)
            goal = self._snapshot(session, row.goal_id)
            return row.to_dto(), goal

    def delete_task(
        self,
        task_id: UUID,
        expected_goal_version: int,
        entry: WorkflowHistoryEntry,
    ) -> Goal:
        with self._transaction("delete_task") as session:
            row = session.get(GoalTaskModel, task_id)
            if row is None:
                raise TaskNotFoundError(str(task_id))
            goal_id = row.goal_id
            self._bump_version(session, goal_id, expected_goal_version, entry.timestamp)
            session.delete(row)
            self._append_entry(session, goal_id, entry)
            return self._snapshot(session, goal_id)

    # ------------------------------------------------------------------
    # AssigneeStore
    # ------------------------------------------------------------------

    def list_assignees(self, goal_id: UUID) -> list[GoalAssignee]:
        stmt = (
            select(GoalAssigneeModel)
            .where(GoalAssigneeModel.goal_id == goal_id)
            .order_by(GoalAssigneeModel.position)
        )
        with self._transaction("list_assignees") as session:
            return [row.to_dto() for row in session.scalars(stmt)]

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
        with self._transaction("add_assignees") as session:
            if entry is not None:
                self._bump_version(
                    session,
                    goal_id,
                    expected_version if expected_version is not None else -1,
                    entry.timestamp,
                )
            else:
                self._require_goal(session, goal_id)

            added = self._insert_assignees(
                session, goal_id, user_ids, assigned_by, assigned_at
            )
            if entry is not None:
                self._append_entry(session, goal_id, entry)
            session.flush()
            return [row.to_dto() for row in added]

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
        with self._transaction("set_assignee_completion") as session:
            self._bump_version(session, goal_id, expected_version, entry.timestamp)
            if create_missing_by is not None:
                self._insert_assignees(
                    session, goal_id, [user_id], create_missing_by, completed_at
                )
            row = session.scalars(
                select(GoalAssigneeModel).where(
                    GoalAssigneeModel.goal_id == goal_id,
                    GoalAssigneeModel.user_id == user_id,
                )
            ).one_or_none()
            if row is None:
                raise AssigneeNotFoundError(str(goal_id), str(user_id))
            row.task_status = AssigneeTaskStatus.COMPLETED.value
            row.completed_at = completed_at
            row.completion_notes = notes
            self._append_entry(session, goal_id, entry)
            session.flush()
            return row.to_dto()

    # ------------------------------------------------------------------
    # PermissionFactsProvider
    # ------------------------------------------------------------------

    def department_permissions_of(self, user_id: UUID) -> frozenset[str]:
        with self._transaction("department_permissions_of") as session:
            return frozenset(
                session.scalars(
                    select(DepartmentPermissionModel.department).where(
                        DepartmentPermissionModel.user_id == user_id
                    )
                )
            )

    def department_grants_of(self, user_id: UUID) -> dict[str, UUID | None]:
        """Department -> granting user, for audit screens."""
        stmt = select(
            DepartmentPermissionModel.department, DepartmentPermissionModel.granted_by
        ).where(DepartmentPermissionModel.user_id == user_id)
        with self._transaction("department_grants_of") as session:
            return {department: granted_by for department, granted_by in session.execute(stmt)}

    def grant_department_permission(
        self,
        user_id: UUID,
        department: str,
        granted_by: UUID | None = None,
    ) -> None:
        with self._transaction("grant_department_permission") as session:
            exists = session.scalar(
                select(DepartmentPermissionModel.id).where(
                    DepartmentPermissionModel.user_id == user_id,
                    DepartmentPermissionModel.department == department,
                )
            )
            if exists is None:
                session.add(
                    DepartmentPermissionModel(
                        user_id=user_id, department=department, granted_by=granted_by
                    )
                )

    def revoke_department_permission(self, user_id: UUID, department: str) -> None:
        with self._transaction("revoke_department_permission") as session:
            session.execute(
                delete(DepartmentPermissionModel).where(
                    DepartmentPermissionModel.user_id == user_id,
                    DepartmentPermissionModel.department == department,
                )
            )
