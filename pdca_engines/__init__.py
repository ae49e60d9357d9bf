"""
Module: pdca_engines
Responsibility:
    Package entrypoint that re-exports the pure decision engines used by
    the workflow services.

Architecture position:
    Engines -- pure decision layer, zero I/O.
    May only import pdca_kernel/domain/ types (and sibling engine modules).
    MUST NOT import pdca_kernel.services, pdca_kernel.stores or the ORM.

Usage:
    from pdca_engines import can_transition, evaluate_phase_gate
"""

from pdca_engines.assignments import (
    all_assignees_complete,
    involved_user_ids,
    pending_assignee_ids,
)
from pdca_engines.permissions import (
    PermissionBasis,
    PermissionDecision,
    can_comment,
    can_complete_assignee_task,
    can_delete_task,
    can_edit_goal,
    can_manage_assignees,
    can_transition,
    can_view_goal,
    can_work_task,
    effective_assignee_ids,
)
from pdca_engines.phase_gate import (
    PhaseGateResult,
    evaluate_phase_gate,
    format_blocking_tasks,
    incomplete_tasks_for_phase,
    phase_incomplete_message,
)

__all__ = [
    "PermissionBasis",
    "PermissionDecision",
    "PhaseGateResult",
    "all_assignees_complete",
    "can_comment",
    "can_complete_assignee_task",
    "can_delete_task",
    "can_edit_goal",
    "can_manage_assignees",
    "can_transition",
    "can_view_goal",
    "can_work_task",
    "effective_assignee_ids",
    "evaluate_phase_gate",
    "format_blocking_tasks",
    "incomplete_tasks_for_phase",
    "involved_user_ids",
    "pending_assignee_ids",
    "phase_incomplete_message",
]
