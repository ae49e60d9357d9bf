"""
pdca_engines.assignments -- Derived assignment facts.

Pure functions over a goal snapshot and its assignee rows: who was ever
involved (for visibility after reassignment) and whether every current
assignee has finished their slice.  Neither result drives a status
change; goals only move when a person asks the workflow engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from pdca_kernel.domain.goal import Goal, GoalAssignee
from pdca_kernel.domain.history import Assignment


def involved_user_ids(
    goal: Goal,
    assignees: Sequence[GoalAssignee],
) -> frozenset[UUID]:
    """Every user id that has ever been an assignee of ``goal``.

    Union of the assignee rows, every ``Assignment`` history entry, and the
    legacy ``current_assignee_id``.
    """
    ids: set[UUID] = {a.user_id for a in assignees}
    for entry in goal.workflow_history:
        if isinstance(entry.action, Assignment):
            ids.update(entry.action.user_ids)
    if goal.current_assignee_id is not None:
        ids.add(goal.current_assignee_id)
    return frozenset(ids)


def all_assignees_complete(assignees: Sequence[GoalAssignee]) -> bool:
    """True when every row is completed.  Vacuously true with no rows."""
    return all(a.is_completed for a in assignees)


def pending_assignee_ids(assignees: Sequence[GoalAssignee]) -> tuple[UUID, ...]:
    return tuple(a.user_id for a in assignees if not a.is_completed)
