"""
pdca_kernel.services.outcomes -- Exception-to-result boundary.

Store adapters raise typed exceptions; caller-facing services return
``WorkflowResult`` values.  ``failure_from_store_error`` is the one
mapping between the two, shared by every service.
"""

from __future__ import annotations

from pdca_kernel.domain.results import WorkflowErrorKind, WorkflowResult
from pdca_kernel.exceptions import (
    GoalError,
    OptimisticLockError,
    StoreUnavailableError,
)

CONFLICT_MESSAGE = (
    "This goal was changed by someone else. Reload it and try again."
)
UNAVAILABLE_MESSAGE = "The goal store is temporarily unavailable. Please retry."

# Exceptions a service turns into a result.  Anything else propagates.
STORE_FAILURES = (GoalError, OptimisticLockError, StoreUnavailableError)


def failure_from_store_error(
    exc: GoalError | OptimisticLockError | StoreUnavailableError,
) -> WorkflowResult:
    if isinstance(exc, OptimisticLockError):
        return WorkflowResult.failure(WorkflowErrorKind.CONFLICT, CONFLICT_MESSAGE)
    if isinstance(exc, StoreUnavailableError):
        return WorkflowResult.failure(
            WorkflowErrorKind.UNAVAILABLE, UNAVAILABLE_MESSAGE
        )
    return WorkflowResult.failure(
        WorkflowErrorKind.NOT_FOUND, str(exc), code=exc.code
    )


def goal_not_found(goal_id: object) -> WorkflowResult:
    return WorkflowResult.failure(
        WorkflowErrorKind.NOT_FOUND, f"Goal not found: {goal_id}"
    )


def forbidden(message: str) -> WorkflowResult:
    return WorkflowResult.failure(WorkflowErrorKind.FORBIDDEN, message)


def invalid(message: str) -> WorkflowResult:
    return WorkflowResult.failure(WorkflowErrorKind.VALIDATION, message)
