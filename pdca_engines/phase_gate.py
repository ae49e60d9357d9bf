"""
pdca_engines.phase_gate -- Phase task ledger and forward-progression gate.

Responsibility:
    Report which tasks of a PDCA phase are still open, and decide whether
    a status change must wait for them.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A task blocks only if it is in the phase and neither completed nor
      cancelled.  Cancelled tasks are excluded from the incomplete set.
    - A phase with no tasks passes trivially.
    - The ledger is consulted only for forward progressions
      (Plan->Do, Do->Check, Check->Act, Act->Completed).  Moves into or
      out of On Hold and backward moves (Check->Do, Act->Plan) bypass
      it, so paused or regressed goals can always be recovered.
    - Blocking tasks keep the order the task store returned them in.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass

from pdca_kernel.domain.goal import GoalStatus, GoalTask, PdcaPhase
from pdca_kernel.domain.transitions import is_forward_progression

UNASSIGNED_LABEL = "Unassigned"


@dataclass(frozen=True)
class PhaseGateResult:
    passed: bool
    consulted: bool
    phase: PdcaPhase | None = None
    blocking_tasks: tuple[GoalTask, ...] = ()


def incomplete_tasks_for_phase(
    tasks: Iterable[GoalTask],
    phase: PdcaPhase,
) -> list[GoalTask]:
    return [t for t in tasks if t.pdca_phase == phase and t.is_open]


def evaluate_phase_gate(
    from_status: GoalStatus,
    to_status: GoalStatus,
    load_tasks: Callable[[PdcaPhase], Sequence[GoalTask]],
) -> PhaseGateResult:
    """Run the gate for one requested move.

    ``load_tasks`` is only called for forward progressions, which keeps
    the task read off the On Hold and backward paths entirely.
    """
    if not is_forward_progression(from_status, to_status):
        return PhaseGateResult(passed=True, consulted=False)

    phase = PdcaPhase.for_status(from_status)
    if phase is None:
        return PhaseGateResult(passed=True, consulted=False)
    blocking = incomplete_tasks_for_phase(load_tasks(phase), phase)
    return PhaseGateResult(
        passed=not blocking,
        consulted=True,
        phase=phase,
        blocking_tasks=tuple(blocking),
    )


def format_blocking_tasks(tasks: Iterable[GoalTask]) -> str:
    return "\n".join(
        f"• {t.title} ({t.assignee_name or UNASSIGNED_LABEL})" for t in tasks
    )


def phase_incomplete_message(
    from_status: GoalStatus,
    to_status: GoalStatus,
    tasks: Iterable[GoalTask],
) -> str:
    return (
        f"Cannot progress from {from_status.value} to {to_status.value}. "
        f"Complete all {from_status.value} phase tasks first:\n\n"
        f"{format_blocking_tasks(tasks)}"
    )
