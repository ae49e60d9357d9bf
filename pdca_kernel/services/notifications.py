"""
pdca_kernel.services.notifications -- Notification sinks.

Sinks receive every committed history entry.  Delivery is best-effort:
the services call ``notify_safely`` which logs and swallows sink failures,
so a broken sink never turns a committed change into an error.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from pdca_kernel.domain.goal import Goal
from pdca_kernel.domain.history import WorkflowHistoryEntry
from pdca_kernel.domain.ports import NotificationSink
from pdca_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


@dataclass(frozen=True)
class Notification:
    goal_id: UUID
    goal_version: int
    actor_id: UUID
    entry: WorkflowHistoryEntry


class LoggingNotificationSink:
    """Emits one structured log line per committed entry."""

    def __init__(self, level: str = "INFO") -> None:
        self._level: int = logging.getLevelName(level.upper())

    def notify(self, goal: Goal, entry: WorkflowHistoryEntry, actor_id: UUID) -> None:
        logger.log(
            self._level,
            "goal_notification",
            extra={
                "goal_id": str(goal.goal_id),
                "goal_version": goal.version,
                "action": entry.action_name,
                "entry_id": str(entry.entry_id),
                "actor_id": str(actor_id),
                "goal_status": goal.status.value,
            },
        )


class RecordingNotificationSink:
    """Keeps every notification in memory.  Used by tests and demos."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._notifications: list[Notification] = []

    def notify(self, goal: Goal, entry: WorkflowHistoryEntry, actor_id: UUID) -> None:
        with self._lock:
            self._notifications.append(
                Notification(
                    goal_id=goal.goal_id,
                    goal_version=goal.version,
                    actor_id=actor_id,
                    entry=entry,
                )
            )

    @property
    def notifications(self) -> tuple[Notification, ...]:
        with self._lock:
            return tuple(self._notifications)

    def actions(self) -> list[str]:
        return [n.entry.action_name for n in self.notifications]

    def clear(self) -> None:
        with self._lock:
            self._notifications.clear()


class CompositeNotificationSink:
    """Fans out to several sinks; one failing sink does not starve the rest."""

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self._sinks = tuple(sinks)

    def notify(self, goal: Goal, entry: WorkflowHistoryEntry, actor_id: UUID) -> None:
        for sink in self._sinks:
            notify_safely(sink, goal, entry, actor_id)


def notify_safely(
    sink: NotificationSink | None,
    goal: Goal,
    entry: WorkflowHistoryEntry,
    actor_id: UUID,
) -> bool:
    """Deliver to ``sink``; return False (after logging) if it raised."""
    if sink is None:
        return True
    try:
        sink.notify(goal, entry, actor_id)
    except Exception:
        logger.warning(
            "notification_failed",
            extra={
                "goal_id": str(goal.goal_id),
                "entry_id": str(entry.entry_id),
                "action": entry.action_name,
                "sink": type(sink).__name__,
            },
            exc_info=True,
        )
        return False
    return True
