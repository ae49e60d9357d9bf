"""
PDCA transition table (``pdca_kernel.domain.transitions``).

Responsibility
--------------
The fixed default policy for goal status changes, and the pure validator
over it.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ZERO I/O.

Invariants enforced
-------------------
* ``GOAL_TRANSITIONS`` defines the only legal status changes.  Lookup is
  exact; a status absent from the table (or a target absent from its set)
  is illegal.
* Terminal states (Completed, Cancelled) have empty outgoing sets.  This
  is structural: no caller special-cases them.
* On Hold resumes only into a working phase, never straight to a
  terminal state.
"""

from __future__ import annotations

from pdca_kernel.domain.goal import GoalStatus

GOAL_TRANSITIONS: dict[GoalStatus, frozenset[GoalStatus]] = {
    GoalStatus.PLAN: frozenset({
        GoalStatus.DO,
        GoalStatus.ON_HOLD,
    }),
    GoalStatus.DO: frozenset({
        GoalStatus.CHECK,
        GoalStatus.ON_HOLD,
    }),
    # Back to Do when the check finds issues
    GoalStatus.CHECK: frozenset({
        GoalStatus.ACT,
        GoalStatus.DO,
        GoalStatus.ON_HOLD,
    }),
    # Back to Plan starts the next improvement cycle
    GoalStatus.ACT: frozenset({
        GoalStatus.COMPLETED,
        GoalStatus.PLAN,
        GoalStatus.ON_HOLD,
    }),
    GoalStatus.ON_HOLD: frozenset({
        GoalStatus.PLAN,
        GoalStatus.DO,
        GoalStatus.CHECK,
        GoalStatus.ACT,
    }),
    GoalStatus.COMPLETED: frozenset(),
    GoalStatus.CANCELLED: frozenset(),
}

TERMINAL_GOAL_STATUSES: frozenset[GoalStatus] = frozenset({
    GoalStatus.COMPLETED,
    GoalStatus.CANCELLED,
})

# Forward progressions: the only moves the phase gate applies to.
FORWARD_PROGRESSIONS: dict[GoalStatus, GoalStatus] = {
    GoalStatus.PLAN: GoalStatus.DO,
    GoalStatus.DO: GoalStatus.CHECK,
    GoalStatus.CHECK: GoalStatus.ACT,
    GoalStatus.ACT: GoalStatus.COMPLETED,
}


def _coerce(status: GoalStatus | str) -> GoalStatus | None:
    if isinstance(status, GoalStatus):
        return status
    try:
        return GoalStatus(status)
    except ValueError:
        return None


def is_legal_transition(
    from_status: GoalStatus | str,
    to_status: GoalStatus | str,
) -> bool:
    """Return True iff ``to_status`` is in ``from_status``'s outgoing set.

    Unknown status strings are simply illegal; this never raises.
    """
    src = _coerce(from_status)
    dst = _coerce(to_status)
    if src is None or dst is None:
        return False
    return dst in GOAL_TRANSITIONS.get(src, frozenset())


def is_forward_progression(
    from_status: GoalStatus | str,
    to_status: GoalStatus | str,
) -> bool:
    """True for Plan->Do, Do->Check, Check->Act and Act->Completed only."""
    src = _coerce(from_status)
    dst = _coerce(to_status)
    if src is None or dst is None:
        return False
    return FORWARD_PROGRESSIONS.get(src) == dst


def allowed_targets(status: GoalStatus | str) -> tuple[GoalStatus, ...]:
    """Legal targets from ``status``, in declaration order of ``GoalStatus``."""
    src = _coerce(status)
    if src is None:
        return ()
    targets = GOAL_TRANSITIONS.get(src, frozenset())
    return tuple(s for s in GoalStatus if s in targets)


def is_terminal(status: GoalStatus | str) -> bool:
    src = _coerce(status)
    return src in TERMINAL_GOAL_STATUSES
