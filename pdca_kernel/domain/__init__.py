"""
Pure domain layer.

This module contains pure value objects and domain rules
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (a Clock is injected)
- I/O

All domain objects are immutable and deterministic.
"""

from pdca_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pdca_kernel.domain.goal import (
    Actor,
    AssigneeTaskStatus,
    Goal,
    GoalAssignee,
    GoalDates,
    GoalStateChange,
    GoalStatus,
    GoalTask,
    PdcaPhase,
    PermissionFacts,
    TaskStatus,
    UserRole,
)
from pdca_kernel.domain.history import (
    ACTION_TYPES,
    Assignment,
    CommentAdded,
    HistoryAction,
    StartDateSet,
    StatusChange,
    TargetDateSet,
    TargetDateUpdated,
    TaskCompleted,
    TaskDeleted,
    TaskEdited,
    TaskStarted,
    WorkflowHistoryEntry,
)
from pdca_kernel.domain.ports import (
    AssigneeStore,
    GoalStore,
    NotificationSink,
    PermissionFactsProvider,
    TaskStore,
)
from pdca_kernel.domain.results import (
    DEFAULT_ERROR_CODES,
    WorkflowError,
    WorkflowErrorKind,
    WorkflowResult,
)
from pdca_kernel.domain.transitions import (
    FORWARD_PROGRESSIONS,
    GOAL_TRANSITIONS,
    TERMINAL_GOAL_STATUSES,
    allowed_targets,
    is_forward_progression,
    is_legal_transition,
    is_terminal,
)

__all__ = [
    "ACTION_TYPES",
    "Actor",
    "AssigneeStore",
    "AssigneeTaskStatus",
    "Assignment",
    "Clock",
    "CommentAdded",
    "DEFAULT_ERROR_CODES",
    "DeterministicClock",
    "FORWARD_PROGRESSIONS",
    "GOAL_TRANSITIONS",
    "Goal",
    "GoalAssignee",
    "GoalDates",
    "GoalStateChange",
    "GoalStatus",
    "GoalStore",
    "GoalTask",
    "HistoryAction",
    "NotificationSink",
    "PdcaPhase",
    "PermissionFacts",
    "PermissionFactsProvider",
    "StartDateSet",
    "StatusChange",
    "SystemClock",
    "TERMINAL_GOAL_STATUSES",
    "TargetDateSet",
    "TargetDateUpdated",
    "TaskCompleted",
    "TaskDeleted",
    "TaskEdited",
    "TaskStarted",
    "TaskStore",
    "UserRole",
    "WorkflowError",
    "WorkflowErrorKind",
    "WorkflowHistoryEntry",
    "WorkflowResult",
    "allowed_targets",
    "is_forward_progression",
    "is_legal_transition",
    "is_terminal",
]
