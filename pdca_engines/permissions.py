"""
pdca_engines.permissions -- Pure permission evaluation for goal workflows.

Responsibility:
    Decide whether an actor may drive a goal operation, given explicit
    facts: the actor (role, id, department), the goal snapshot, the
    actor's department grants (``PermissionFacts``) and the goal's
    assignee rows.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import pdca_kernel/domain/ types.

Invariants enforced:
    - First match wins; the decision order is fixed per right.
    - Transition rights are target-agnostic: the same actor may move a
      goal to any structurally legal status.
    - Assignee precedence: GoalAssignee rows, when present, are the only
      assignee source.  The legacy ``current_assignee_id`` is consulted
      only when the goal has no rows at all (see ``effective_assignee_ids``).

Failure modes:
    - None.  Every function returns a decision; unknown combinations deny.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from pdca_engines.assignments import involved_user_ids
from pdca_kernel.domain.goal import (
    Actor,
    Goal,
    GoalAssignee,
    GoalStatus,
    GoalTask,
    PermissionFacts,
)


class PermissionBasis(str, Enum):
    """Which rule granted (or denied) a request.  For logs, not for users."""

    ADMIN = "admin"
    DEPARTMENT_GRANT = "department_grant"
    DEPARTMENT_HEAD = "department_head"
    OWNER = "owner"
    ASSIGNEE = "assignee"
    LEGACY_ASSIGNEE = "legacy_assignee"
    SELF = "self"
    TASK_ASSIGNEE = "task_assignee"
    HISTORICAL_INVOLVEMENT = "historical_involvement"
    DENIED = "denied"


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    basis: PermissionBasis

    def __bool__(self) -> bool:
        return self.allowed


_DENY = PermissionDecision(False, PermissionBasis.DENIED)


def effective_assignee_ids(
    goal: Goal,
    assignees: Sequence[GoalAssignee],
) -> tuple[frozenset[UUID], bool]:
    """Return (assignee ids, came_from_legacy_field).

    Migration shim: ``current_assignee_id`` predates the GoalAssignee
    table.  It is read only when the table has no rows for the goal.
    Deprecated -- drop once every goal has been backfilled with rows.
    """
    if assignees:
        return frozenset(a.user_id for a in assignees), False
    if goal.current_assignee_id is not None:
        return frozenset({goal.current_assignee_id}), True
    return frozenset(), False


def _heads_department(actor: Actor, goal: Goal) -> bool:
    return actor.is_head and actor.department is not None and actor.department == goal.department


def can_transition(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
    assignees: Sequence[GoalAssignee],
    target_status: GoalStatus | None = None,
) -> PermissionDecision:
    """May ``actor`` change this goal's status at all?

    ``target_status`` is accepted for the caller's convenience and logging
    but does not influence the decision.

    Order: Admin, department grant, owner, assignee, deny.
    """
    if actor.is_admin:
        return PermissionDecision(True, PermissionBasis.ADMIN)
    if facts.grants(goal.department):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_GRANT)
    if goal.owner_id == actor.user_id:
        return PermissionDecision(True, PermissionBasis.OWNER)
    ids, legacy = effective_assignee_ids(goal, assignees)
    if actor.user_id in ids:
        return PermissionDecision(
            True,
            PermissionBasis.LEGACY_ASSIGNEE if legacy else PermissionBasis.ASSIGNEE,
        )
    return _DENY


def can_comment(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
    assignees: Sequence[GoalAssignee],
) -> PermissionDecision:
    """Anyone who may drive the status may also comment on it."""
    return can_transition(actor, goal, facts, assignees)


def can_complete_assignee_task(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
    target_user_id: UUID,
) -> PermissionDecision:
    """May ``actor`` mark ``target_user_id``'s slice of the goal complete?

    Narrower than ``can_transition``: owners and fellow assignees may not
    complete someone else's slice.
    """
    if actor.user_id == target_user_id:
        return PermissionDecision(True, PermissionBasis.SELF)
    if actor.is_admin:
        return PermissionDecision(True, PermissionBasis.ADMIN)
    if actor.is_head:
        if _heads_department(actor, goal):
            return PermissionDecision(True, PermissionBasis.DEPARTMENT_HEAD)
        if facts.grants(goal.department):
            return PermissionDecision(True, PermissionBasis.DEPARTMENT_GRANT)
    return _DENY


def can_manage_assignees(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
) -> PermissionDecision:
    if actor.is_admin:
        return PermissionDecision(True, PermissionBasis.ADMIN)
    if _heads_department(actor, goal):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_HEAD)
    if facts.grants(goal.department):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_GRANT)
    return _DENY


def can_edit_goal(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
) -> PermissionDecision:
    """Edit goal details (dates).  Assignees are not editors."""
    if actor.is_admin:
        return PermissionDecision(True, PermissionBasis.ADMIN)
    if _heads_department(actor, goal):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_HEAD)
    if goal.owner_id == actor.user_id:
        return PermissionDecision(True, PermissionBasis.OWNER)
    if facts.grants(goal.department):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_GRANT)
    return _DENY


def can_work_task(
    actor: Actor,
    goal: Goal,
    task: GoalTask,
    facts: PermissionFacts,
    assignees: Sequence[GoalAssignee],
) -> PermissionDecision:
    """Start or edit a GoalTask."""
    if goal.owner_id == actor.user_id:
        return PermissionDecision(True, PermissionBasis.OWNER)
    if task.assigned_to is not None and task.assigned_to == actor.user_id:
        return PermissionDecision(True, PermissionBasis.TASK_ASSIGNEE)
    if actor.is_admin:
        return PermissionDecision(True, PermissionBasis.ADMIN)
    if _heads_department(actor, goal):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_HEAD)
    ids, legacy = effective_assignee_ids(goal, assignees)
    if actor.user_id in ids:
        return PermissionDecision(
            True,
            PermissionBasis.LEGACY_ASSIGNEE if legacy else PermissionBasis.ASSIGNEE,
        )
    return _DENY


def can_delete_task(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
    assignees: Sequence[GoalAssignee],
) -> PermissionDecision:
    """Like ``can_work_task`` minus the task's own assignee."""
    if goal.owner_id == actor.user_id:
        return PermissionDecision(True, PermissionBasis.OWNER)
    if actor.is_admin:
        return PermissionDecision(True, PermissionBasis.ADMIN)
    if _heads_department(actor, goal):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_HEAD)
    ids, legacy = effective_assignee_ids(goal, assignees)
    if actor.user_id in ids:
        return PermissionDecision(
            True,
            PermissionBasis.LEGACY_ASSIGNEE if legacy else PermissionBasis.ASSIGNEE,
        )
    return _DENY


def can_view_goal(
    actor: Actor,
    goal: Goal,
    facts: PermissionFacts,
    assignees: Sequence[GoalAssignee],
) -> PermissionDecision:
    """Transition rights, plus anyone who was ever assigned to the goal."""
    decision = can_transition(actor, goal, facts, assignees)
    if decision.allowed:
        return decision
    if _heads_department(actor, goal):
        return PermissionDecision(True, PermissionBasis.DEPARTMENT_HEAD)
    if actor.user_id in involved_user_ids(goal, assignees):
        return PermissionDecision(True, PermissionBasis.HISTORICAL_INVOLVEMENT)
    return _DENY
