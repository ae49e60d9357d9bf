"""
Module: pdca_kernel.models.goal
Responsibility: ORM persistence for goals, their workflow history, phase
    tasks, assignees and the department permission grants.

Architecture position: Kernel > Models.  May import from db/ and the
    domain value objects it converts to and from.

Invariants enforced:
    - ``goals.version`` is the optimistic-concurrency token; the SQL store
      only writes a goal with ``WHERE version = :expected``.
    - previous_status is set iff status is 'On Hold' (check constraint).
    - History rows are append-only: UNIQUE(goal_id, sequence) and ORM
      listeners reject UPDATE and DELETE.
    - Assignee rows are never deleted; UNIQUE(goal_id, user_id).

Failure modes:
    - IntegrityError on duplicate (goal_id, sequence) or (goal_id, user_id).
    - ImmutabilityViolationError on history UPDATE/DELETE or assignee DELETE.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pdca_kernel.db.base import Base
from pdca_kernel.db.types import UUIDString
from pdca_kernel.domain.goal import (
    AssigneeTaskStatus,
    Goal,
    GoalAssignee,
    GoalDates,
    GoalStatus,
    GoalTask,
    PdcaPhase,
    TaskStatus,
)
from pdca_kernel.domain.history import WorkflowHistoryEntry
from pdca_kernel.exceptions import ImmutabilityViolationError

_GOAL_STATUSES = "', '".join(s.value for s in GoalStatus)
_PHASES = "', '".join(p.value for p in PdcaPhase)
_TASK_STATUSES = "', '".join(s.value for s in TaskStatus)


class GoalModel(Base):
    """Persistent goal aggregate root."""

    __tablename__ = "goals"

    __table_args__ = (
        CheckConstraint(
            f"status IN ('{_GOAL_STATUSES}')",
            name="valid_status",
        ),
        CheckConstraint(
            "(status = 'On Hold' AND previous_status IS NOT NULL) OR "
            "(status <> 'On Hold' AND previous_status IS NULL)",
            name="previous_status_on_hold",
        ),
        CheckConstraint("version >= 1", name="version_positive"),
        Index("ix_goals_department_status", "department", "status"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    department: Mapped[str] = mapped_column(String(200), nullable=False)
    subject: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    current_assignee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    version: Mapped[int] = mapped_column(nullable=False, default=1)
    start_date: Mapped[date | None] = mapped_column(nullable=True)
    target_date: Mapped[date | None] = mapped_column(nullable=True)
    adjusted_target_date: Mapped[date | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    history: Mapped[list[GoalHistoryEntryModel]] = relationship(
        "GoalHistoryEntryModel",
        back_populates="goal",
        order_by="GoalHistoryEntryModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Goal {self.id} status={self.status} v{self.version}>"

    def to_dto(self) -> Goal:
        """Convert ORM model to frozen domain snapshot."""
        return Goal(
            goal_id=self.id,
            owner_id=self.owner_id,
            department=self.department,
            subject=self.subject,
            status=GoalStatus(self.status),
            previous_status=(
                GoalStatus(self.previous_status) if self.previous_status else None
            ),
            current_assignee_id=self.current_assignee_id,
            workflow_history=tuple(h.to_dto() for h in self.history),
            version=self.version,
            dates=GoalDates(
                start_date=self.start_date,
                target_date=self.target_date,
                adjusted_target_date=self.adjusted_target_date,
            ),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: Goal) -> GoalModel:
        """Create ORM model from a domain snapshot (history rows not included)."""
        return cls(
            id=dto.goal_id,
            owner_id=dto.owner_id,
            department=dto.department,
            subject=dto.subject,
            status=dto.status.value,
            previous_status=dto.previous_status.value if dto.previous_status else None,
            current_assignee_id=dto.current_assignee_id,
            version=dto.version,
            start_date=dto.dates.start_date,
            target_date=dto.dates.target_date,
            adjusted_target_date=dto.dates.adjusted_target_date,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
        )


class GoalHistoryEntryModel(Base):
    """Persistent workflow history entry.  Append-only.

    ``sequence`` is assigned per goal inside the version-checked write, so
    ordering by it reproduces commit order.
    """

    __tablename__ = "goal_history_entries"

    __table_args__ = (
        UniqueConstraint("goal_id", "sequence", name="uq_goal_history_sequence"),
    )

    goal_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goals.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    user_name: Mapped[str] = mapped_column(String(200), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    goal: Mapped[GoalModel] = relationship("GoalModel", back_populates="history")

    def __repr__(self) -> str:
        return f"<GoalHistoryEntry {self.id} goal={self.goal_id} #{self.sequence} {self.action}>"

    def to_dto(self) -> WorkflowHistoryEntry:
        return WorkflowHistoryEntry.from_dict({
            "entry_id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "user_id": str(self.user_id),
            "user_name": self.user_name,
            "action": self.action,
            "details": self.details,
        })

    @classmethod
    def from_dto(
        cls,
        entry: WorkflowHistoryEntry,
        goal_id: UUID,
        sequence: int,
    ) -> GoalHistoryEntryModel:
        data = entry.to_dict()
        return cls(
            id=entry.entry_id,
            goal_id=goal_id,
            sequence=sequence,
            timestamp=entry.timestamp,
            user_id=entry.user_id,
            user_name=entry.user_name,
            action=data["action"],
            details=data["details"],
        )


class GoalAssigneeModel(Base):
    """A user attached to a goal.  Rows are never deleted."""

    __tablename__ = "goal_assignees"

    __table_args__ = (
        UniqueConstraint("goal_id", "user_id", name="uq_goal_assignees_user"),
        CheckConstraint(
            "task_status IN ('pending', 'completed')",
            name="task_status",
        ),
    )

    goal_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goals.id"), nullable=False, index=True,
    )
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    position: Mapped[int] = mapped_column(nullable=False)
    assigned_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(nullable=False)
    task_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> GoalAssignee:
        return GoalAssignee(
            goal_id=self.goal_id,
            user_id=self.user_id,
            assigned_by=self.assigned_by,
            assigned_at=self.assigned_at,
            task_status=AssigneeTaskStatus(self.task_status),
            completed_at=self.completed_at,
            completion_notes=self.completion_notes,
        )


class GoalTaskModel(Base):
    """A task scoped to one PDCA phase of a goal."""

    __tablename__ = "goal_tasks"

    __table_args__ = (
        CheckConstraint(f"pdca_phase IN ('{_PHASES}')", name="phase"),
        CheckConstraint(f"status IN ('{_TASK_STATUSES}')", name="status"),
        Index("ix_goal_tasks_goal_phase", "goal_id", "pdca_phase"),
    )

    goal_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("goals.id"), nullable=False,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    pdca_phase: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    assigned_to: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    assignee_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    assigned_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completion_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_index: Mapped[int] = mapped_column(nullable=False, default=0)

    def to_dto(self) -> GoalTask:
        return GoalTask(
            task_id=self.id,
            goal_id=self.goal_id,
            title=self.title,
            pdca_phase=PdcaPhase(self.pdca_phase),
            status=TaskStatus(self.status),
            assigned_to=self.assigned_to,
            assignee_name=self.assignee_name,
            assigned_by=self.assigned_by,
            completed_at=self.completed_at,
            completed_by=self.completed_by,
            completion_notes=self.completion_notes,
            order_index=self.order_index,
        )

    def apply(self, dto: GoalTask) -> None:
        """Copy the mutable fields of ``dto`` onto this row."""
        self.title = dto.title
        self.pdca_phase = dto.pdca_phase.value
        self.status = dto.status.value
        self.assigned_to = dto.assigned_to
        self.assignee_name = dto.assignee_name
        self.assigned_by = dto.assigned_by
        self.completed_at = dto.completed_at
        self.completed_by = dto.completed_by
        self.completion_notes = dto.completion_notes

    @classmethod
    def from_dto(cls, dto: GoalTask) -> GoalTaskModel:
        row = cls(id=dto.task_id, goal_id=dto.goal_id, order_index=dto.order_index)
        row.apply(dto)
        return row


class DepartmentPermissionModel(Base):
    """Grant of goal-management rights over a department to one user."""

    __tablename__ = "department_permissions"

    __table_args__ = (
        UniqueConstraint("user_id", "department", name="uq_department_permissions"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    department: Mapped[str] = mapped_column(String(200), nullable=False)
    granted_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(GoalHistoryEntryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to workflow history rows."""
    raise ImmutabilityViolationError(
        entity_type="GoalHistoryEntry",
        entity_id=str(target.id),
        reason="Workflow history entries are append-only -- cannot modify",
    )


@event.listens_for(GoalHistoryEntryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of workflow history rows."""
    raise ImmutabilityViolationError(
        entity_type="GoalHistoryEntry",
        entity_id=str(target.id),
        reason="Workflow history entries are append-only -- cannot delete",
    )


@event.listens_for(GoalAssigneeModel, "before_delete")
def prevent_assignee_delete(mapper, connection, target):
    """Assignees are never removed; reassignment adds rows."""
    raise ImmutabilityViolationError(
        entity_type="GoalAssignee",
        entity_id=str(target.id),
        reason="Goal assignees cannot be deleted",
    )
