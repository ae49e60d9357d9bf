"""
Exceptions raised below the service seam.

Services never raise for business outcomes such as a missing goal, an
illegal transition, a forbidden actor, an incomplete phase or a lost
race.  Those come back as ``WorkflowResult`` values.  The classes here
are what the stores and ORM listeners raise; the services translate them
at their boundary (``pdca_kernel.services.outcomes``).

    PdcaKernelError
        GoalError
            GoalNotFoundError           GOAL_NOT_FOUND
            TaskNotFoundError           TASK_NOT_FOUND
            AssigneeNotFoundError       ASSIGNEE_NOT_FOUND
        ConcurrencyError
            OptimisticLockError         OPTIMISTIC_LOCK_CONFLICT
        StoreError
            StoreUnavailableError       STORE_UNAVAILABLE  (retryable)
        ImmutabilityError
            ImmutabilityViolationError  IMMUTABILITY_VIOLATION

``code`` is a class attribute safe to expose to API callers.  Context
(ids, versions, reasons) is kept on the instance so the structured
formatter can emit it as ``exc_<name>`` fields.
"""


class PdcaKernelError(Exception):
    code: str = "PDCA_KERNEL_ERROR"


class GoalError(PdcaKernelError):
    code: str = "GOAL_ERROR"


class GoalNotFoundError(GoalError):
    code: str = "GOAL_NOT_FOUND"

    def __init__(self, goal_id: str):
        self.goal_id = goal_id
        super().__init__(f"Goal not found: {goal_id}")


class TaskNotFoundError(GoalError):
    code: str = "TASK_NOT_FOUND"

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class AssigneeNotFoundError(GoalError):
    """The user has no assignee row on the goal."""

    code: str = "ASSIGNEE_NOT_FOUND"

    def __init__(self, goal_id: str, user_id: str):
        self.goal_id = goal_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not an assignee of goal {goal_id}")


class ConcurrencyError(PdcaKernelError):
    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """The goal's version moved between load and commit."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        seen = "" if actual_version is None else f", found {actual_version}"
        super().__init__(
            f"{entity_type} {entity_id} changed concurrently "
            f"(expected version {expected_version}{seen})"
        )


class StoreError(PdcaKernelError):
    code: str = "STORE_ERROR"


class StoreUnavailableError(StoreError):
    """
    Timeout or lost connection.

    The one failure ``pdca_kernel.services.retry`` will try again.
    """

    code: str = "STORE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store unavailable during {operation}: {reason}")


class ImmutabilityError(PdcaKernelError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Workflow history rows are append-only."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")
