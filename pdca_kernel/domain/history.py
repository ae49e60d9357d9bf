"""
Workflow history entries (``pdca_kernel.domain.history``).

Responsibility
--------------
Immutable records of state-changing events on a goal.  The action is a
tagged union: one frozen dataclass per variant, each carrying only the
fields valid for that action, discriminated by its ``tag`` class
attribute.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Entries are frozen; the only write operation on a history is append
  (see ``pdca_kernel.services.history_recorder``).
* ``to_dict``/``from_dict`` are exact inverses for every variant, so the
  persisted JSON payload reconstructs the same entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, ClassVar, Union
from uuid import UUID

from pdca_kernel.domain.goal import GoalStatus, TaskStatus


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(value)


def _parse_uuid(value: Any) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    return UUID(value)


def _parse_status(value: Any) -> GoalStatus | None:
    if value is None:
        return None
    return GoalStatus(value)


# =========================================================================
# Action variants
# =========================================================================


@dataclass(frozen=True)
class StatusChange:
    """Goal moved between PDCA statuses.

    ``from_status`` is None only for the creation entry (-> Plan).
    ``previous_status`` is set when the move parks the goal On Hold.
    """

    tag: ClassVar[str] = "status_change"

    to_status: GoalStatus
    from_status: GoalStatus | None = None
    comment: str = ""
    previous_status: GoalStatus | None = None

    def payload(self) -> dict[str, Any]:
        return {
            "from_status": self.from_status.value if self.from_status else None,
            "to_status": self.to_status.value,
            "comment": self.comment,
            "previous_status": (
                self.previous_status.value if self.previous_status else None
            ),
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> StatusChange:
        return cls(
            to_status=GoalStatus(data["to_status"]),
            from_status=_parse_status(data.get("from_status")),
            comment=data.get("comment", ""),
            previous_status=_parse_status(data.get("previous_status")),
        )


@dataclass(frozen=True)
class CommentAdded:
    tag: ClassVar[str] = "comment"

    comment: str

    def payload(self) -> dict[str, Any]:
        return {"comment": self.comment}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> CommentAdded:
        return cls(comment=data["comment"])


@dataclass(frozen=True)
class Assignment:
    tag: ClassVar[str] = "assignment"

    user_ids: tuple[UUID, ...]

    def payload(self) -> dict[str, Any]:
        return {"user_ids": [str(u) for u in self.user_ids]}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Assignment:
        return cls(user_ids=tuple(UUID(u) for u in data["user_ids"]))


@dataclass(frozen=True)
class TaskCompleted:
    """A GoalTask was completed, or an assignee finished their own slice.

    ``task_id`` is None for an assignee-slice completion.
    """

    tag: ClassVar[str] = "task_completed"

    task_id: UUID | None = None
    task_title: str | None = None
    assignee_id: UUID | None = None
    notes: str | None = None

    def payload(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id) if self.task_id else None,
            "task_title": self.task_title,
            "assignee_id": str(self.assignee_id) if self.assignee_id else None,
            "notes": self.notes,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TaskCompleted:
        return cls(
            task_id=_parse_uuid(data.get("task_id")),
            task_title=data.get("task_title"),
            assignee_id=_parse_uuid(data.get("assignee_id")),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class TaskStarted:
    tag: ClassVar[str] = "task_started"

    task_id: UUID
    task_title: str
    previous_status: TaskStatus

    def payload(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "task_title": self.task_title,
            "previous_status": self.previous_status.value,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TaskStarted:
        return cls(
            task_id=UUID(data["task_id"]),
            task_title=data["task_title"],
            previous_status=TaskStatus(data["previous_status"]),
        )


@dataclass(frozen=True)
class TaskEdited:
    """Title, assignment or status of a GoalTask changed.

    ``changes`` pairs each edited field with its new value, in the order
    the fields were edited.  Values are strings (or None for a cleared
    assignment) so the payload stays plain JSON.
    """

    tag: ClassVar[str] = "task_edited"

    task_id: UUID
    task_title: str
    changes: tuple[tuple[str, str | None], ...] = ()

    def payload(self) -> dict[str, Any]:
        return {
            "task_id": str(self.task_id),
            "task_title": self.task_title,
            "changes": dict(self.changes),
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TaskEdited:
        return cls(
            task_id=UUID(data["task_id"]),
            task_title=data["task_title"],
            changes=tuple((data.get("changes") or {}).items()),
        )


@dataclass(frozen=True)
class TaskDeleted:
    tag: ClassVar[str] = "task_deleted"

    task_id: UUID
    task_title: str

    def payload(self) -> dict[str, Any]:
        return {"task_id": str(self.task_id), "task_title": self.task_title}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TaskDeleted:
        return cls(task_id=UUID(data["task_id"]), task_title=data["task_title"])


@dataclass(frozen=True)
class StartDateSet:
    tag: ClassVar[str] = "start_date_set"

    new_start_date: date
    comment: str = ""

    def payload(self) -> dict[str, Any]:
        return {"new_start_date": _iso(self.new_start_date), "comment": self.comment}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> StartDateSet:
        return cls(
            new_start_date=_parse_date(data["new_start_date"]),
            comment=data.get("comment", ""),
        )


@dataclass(frozen=True)
class TargetDateSet:
    tag: ClassVar[str] = "target_date_set"

    new_target_date: date
    comment: str = ""

    def payload(self) -> dict[str, Any]:
        return {"new_target_date": _iso(self.new_target_date), "comment": self.comment}

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TargetDateSet:
        return cls(
            new_target_date=_parse_date(data["new_target_date"]),
            comment=data.get("comment", ""),
        )


@dataclass(frozen=True)
class TargetDateUpdated:
    tag: ClassVar[str] = "target_date_updated"

    old_target_date: date
    new_target_date: date
    comment: str = ""

    def payload(self) -> dict[str, Any]:
        return {
            "old_target_date": _iso(self.old_target_date),
            "new_target_date": _iso(self.new_target_date),
            "comment": self.comment,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TargetDateUpdated:
        return cls(
            old_target_date=_parse_date(data["old_target_date"]),
            new_target_date=_parse_date(data["new_target_date"]),
            comment=data.get("comment", ""),
        )


HistoryAction = Union[
    StatusChange,
    CommentAdded,
    Assignment,
    TaskCompleted,
    TaskStarted,
    TaskEdited,
    TaskDeleted,
    StartDateSet,
    TargetDateSet,
    TargetDateUpdated,
]

ACTION_TYPES: dict[str, type] = {
    cls.tag: cls
    for cls in (
        StatusChange,
        CommentAdded,
        Assignment,
        TaskCompleted,
        TaskStarted,
        TaskEdited,
        TaskDeleted,
        StartDateSet,
        TargetDateSet,
        TargetDateUpdated,
    )
}


# =========================================================================
# Entry
# =========================================================================


@dataclass(frozen=True)
class WorkflowHistoryEntry:
    """Immutable record of one state-changing event on a goal."""

    entry_id: UUID
    timestamp: datetime
    user_id: UUID
    user_name: str
    action: HistoryAction

    @property
    def action_name(self) -> str:
        return self.action.tag

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": str(self.entry_id),
            "timestamp": self.timestamp.isoformat(),
            "user_id": str(self.user_id),
            "user_name": self.user_name,
            "action": self.action.tag,
            "details": self.action.payload(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowHistoryEntry:
        tag = data["action"]
        action_cls = ACTION_TYPES.get(tag)
        if action_cls is None:
            raise ValueError(f"Unknown workflow history action: {tag!r}")
        return cls(
            entry_id=UUID(data["entry_id"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            user_id=UUID(data["user_id"]),
            user_name=data["user_name"],
            action=action_cls.from_payload(data.get("details") or {}),
        )
