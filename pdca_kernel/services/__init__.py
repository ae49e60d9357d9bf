"""
Kernel services -- the imperative shell around the pure domain and engines.

Every caller-facing operation returns a ``WorkflowResult``; store
exceptions are translated at this boundary (``outcomes``).
"""

from pdca_kernel.services.assignee_tracker import AssigneeCompletionTracker
from pdca_kernel.services.goal_activity import GoalActivityService
from pdca_kernel.services.history_recorder import HistoryRecorder
from pdca_kernel.services.notifications import (
    CompositeNotificationSink,
    LoggingNotificationSink,
    RecordingNotificationSink,
)
from pdca_kernel.services.retry import RetryPolicy, run_with_retry
from pdca_kernel.services.workflow_engine import WorkflowEngine

__all__ = [
    "AssigneeCompletionTracker",
    "CompositeNotificationSink",
    "GoalActivityService",
    "HistoryRecorder",
    "LoggingNotificationSink",
    "RecordingNotificationSink",
    "RetryPolicy",
    "WorkflowEngine",
    "run_with_retry",
]
