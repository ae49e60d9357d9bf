"""
Workflow results (``pdca_kernel.domain.results``).

Responsibility
--------------
The discriminated result every caller-facing workflow operation returns:
either a success payload (the updated goal, plus a task or assignee where
relevant) or a typed ``WorkflowError``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Business-rule failures (NOT_FOUND, ILLEGAL_TRANSITION, FORBIDDEN,
  PHASE_INCOMPLETE, CONFLICT, VALIDATION) travel as values, never as
  exceptions.
* Only UNAVAILABLE is ``retryable``.
* ``WorkflowResult.ok`` is True iff ``error`` is None.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pdca_kernel.domain.goal import Goal, GoalAssignee, GoalTask


class WorkflowErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    ILLEGAL_TRANSITION = "illegal_transition"
    FORBIDDEN = "forbidden"
    PHASE_INCOMPLETE = "phase_incomplete"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"
    VALIDATION = "validation"


DEFAULT_ERROR_CODES: dict[WorkflowErrorKind, str] = {
    WorkflowErrorKind.NOT_FOUND: "GOAL_NOT_FOUND",
    WorkflowErrorKind.ILLEGAL_TRANSITION: "ILLEGAL_TRANSITION",
    WorkflowErrorKind.FORBIDDEN: "FORBIDDEN",
    WorkflowErrorKind.PHASE_INCOMPLETE: "PHASE_INCOMPLETE",
    WorkflowErrorKind.CONFLICT: "OPTIMISTIC_LOCK_CONFLICT",
    WorkflowErrorKind.UNAVAILABLE: "STORE_UNAVAILABLE",
    WorkflowErrorKind.VALIDATION: "VALIDATION_ERROR",
}


@dataclass(frozen=True)
class WorkflowError:
    """A typed, user-facing failure.

    ``blocking_tasks`` is populated for PHASE_INCOMPLETE only, in the order
    the task store returned them.
    """

    kind: WorkflowErrorKind
    message: str
    code: str = ""
    blocking_tasks: tuple[GoalTask, ...] = ()

    def __post_init__(self) -> None:
        if not self.code:
            object.__setattr__(self, "code", DEFAULT_ERROR_CODES[self.kind])

    @property
    def retryable(self) -> bool:
        return self.kind == WorkflowErrorKind.UNAVAILABLE


@dataclass(frozen=True)
class WorkflowResult:
    """Outcome of a workflow operation."""

    goal: Goal | None = None
    error: WorkflowError | None = None
    task: GoalTask | None = None
    assignee: GoalAssignee | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls,
        goal: Goal,
        *,
        task: GoalTask | None = None,
        assignee: GoalAssignee | None = None,
    ) -> WorkflowResult:
        return cls(goal=goal, task=task, assignee=assignee)

    @classmethod
    def failure(
        cls,
        kind: WorkflowErrorKind,
        message: str,
        *,
        code: str = "",
        blocking_tasks: tuple[GoalTask, ...] = (),
    ) -> WorkflowResult:
        return cls(
            error=WorkflowError(
                kind=kind,
                message=message,
                code=code,
                blocking_tasks=blocking_tasks,
            )
        )
