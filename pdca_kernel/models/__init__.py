"""ORM models for the goal workflow tables."""

from pdca_kernel.models.goal import (
    DepartmentPermissionModel,
    GoalAssigneeModel,
    GoalHistoryEntryModel,
    GoalModel,
    GoalTaskModel,
)

__all__ = [
    "DepartmentPermissionModel",
    "GoalAssigneeModel",
    "GoalHistoryEntryModel",
    "GoalModel",
    "GoalTaskModel",
]
