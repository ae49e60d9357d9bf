"""
Goal aggregate value objects (``pdca_kernel.domain.goal``).

Responsibility
--------------
Frozen snapshots of the goal aggregate and the records that hang off it:
tasks scoped to a PDCA phase, assignee rows with their personal completion
flag, the acting user, and the permission facts the evaluator consumes.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``stores/`` or outer layers.

Invariants enforced
-------------------
* ``previous_status`` is set if and only if ``status`` is ON_HOLD
  (checked in ``Goal.__post_init__``).
* ``version`` starts at 1 and only grows; store adapters bump it by
  exactly one on each committed mutation.
* ``workflow_history`` is a tuple -- appending returns a new goal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from pdca_kernel.domain.history import WorkflowHistoryEntry


class GoalStatus(str, Enum):
    """PDCA lifecycle states of a goal."""

    PLAN = "Plan"
    DO = "Do"
    CHECK = "Check"
    ACT = "Act"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PdcaPhase(str, Enum):
    """The four working phases a task can be scoped to."""

    PLAN = "Plan"
    DO = "Do"
    CHECK = "Check"
    ACT = "Act"

    @classmethod
    def for_status(cls, status: GoalStatus) -> PdcaPhase | None:
        """Map a working goal status to its phase (None for the others)."""
        try:
            return cls(status.value)
        except ValueError:
            return None


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssigneeTaskStatus(str, Enum):
    """Personal completion flag of one assignee.  One-way: pending -> completed."""

    PENDING = "pending"
    COMPLETED = "completed"


class UserRole(str, Enum):
    ADMIN = "Admin"
    HEAD = "Head"
    EMPLOYEE = "Employee"


@dataclass(frozen=True)
class Actor:
    """The authenticated user driving an operation."""

    user_id: UUID
    role: UserRole
    name: str
    department: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_head(self) -> bool:
        return self.role == UserRole.HEAD


@dataclass(frozen=True)
class PermissionFacts:
    """Snapshot of the acting user's department permission grants.

    Loaded once per request by the caller (or the service) and passed to
    the permission evaluator as a value, so the evaluator never performs
    I/O of its own.
    """

    department_permissions: frozenset[str] = frozenset()

    def grants(self, department: str | None) -> bool:
        return department is not None and department in self.department_permissions


@dataclass(frozen=True)
class GoalTask:
    """A unit of work scoped to a goal and a PDCA phase."""

    task_id: UUID
    goal_id: UUID
    title: str
    pdca_phase: PdcaPhase
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: UUID | None = None
    assignee_name: str | None = None
    assigned_by: UUID | None = None
    completed_at: datetime | None = None
    completed_by: UUID | None = None
    completion_notes: str | None = None
    order_index: int = 0

    @property
    def is_open(self) -> bool:
        """Neither completed nor cancelled."""
        return self.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


@dataclass(frozen=True)
class GoalAssignee:
    """A user attached to a goal, with their own completion flag."""

    goal_id: UUID
    user_id: UUID
    assigned_by: UUID
    assigned_at: datetime
    task_status: AssigneeTaskStatus = AssigneeTaskStatus.PENDING
    completed_at: datetime | None = None
    completion_notes: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.task_status == AssigneeTaskStatus.COMPLETED


@dataclass(frozen=True)
class GoalStateChange:
    """The status fields a committed transition writes.

    ``current_assignee_id`` is only written when not None (the legacy
    reassignment parameter of a status change).
    """

    status: GoalStatus
    previous_status: GoalStatus | None = None
    current_assignee_id: UUID | None = None


@dataclass(frozen=True)
class GoalDates:
    """Planned dates of a goal; written together with a date history entry."""

    start_date: date | None = None
    target_date: date | None = None
    adjusted_target_date: date | None = None


@dataclass(frozen=True)
class Goal:
    """Snapshot of the goal aggregate root.

    ``current_assignee_id`` is the legacy single-assignee field.  It is
    superseded by ``GoalAssignee`` rows and only read as a fallback when a
    goal has none.
    """

    goal_id: UUID
    owner_id: UUID
    department: str
    subject: str = ""
    status: GoalStatus = GoalStatus.PLAN
    previous_status: GoalStatus | None = None
    current_assignee_id: UUID | None = None
    workflow_history: tuple[WorkflowHistoryEntry, ...] = ()
    version: int = 1
    dates: GoalDates = field(default_factory=GoalDates)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        on_hold = self.status == GoalStatus.ON_HOLD
        if on_hold and self.previous_status is None:
            raise ValueError(
                f"Goal {self.goal_id} is On Hold without a previous_status"
            )
        if not on_hold and self.previous_status is not None:
            raise ValueError(
                f"Goal {self.goal_id} has previous_status "
                f"{self.previous_status.value} while {self.status.value}"
            )
        if self.version < 1:
            raise ValueError(f"Goal version must be >= 1, got {self.version}")
