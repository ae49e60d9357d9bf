"""
pdca_kernel.logging_config -- JSON log lines with request-scoped context.

Every kernel logger lives under the ``pdca_kernel`` namespace.  Services
bind ``goal_id`` / ``actor_id`` with ``LogContext.bind`` and pass event
fields through ``extra=``; the formatter merges both into one JSON object
per record.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from contextvars import ContextVar, Token
from datetime import UTC, date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import UUID

LOGGER_NAMESPACE = "pdca_kernel"
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

CONTEXT_FIELDS: tuple[str, ...] = ("correlation_id", "goal_id", "actor_id", "trace_id")

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("pdca_log_context", default=_EMPTY)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class LogContext:
    """Request-scoped log fields, safe across threads and asyncio tasks.

    Only the names in ``CONTEXT_FIELDS`` are kept; ``None`` values and
    unknown names are ignored.
    """

    @staticmethod
    def _merged(values: dict[str, str | None]) -> Mapping[str, str]:
        current = dict(_context.get())
        for name, value in values.items():
            if name in CONTEXT_FIELDS and value is not None:
                current[name] = value
        return MappingProxyType(current)

    @classmethod
    def set(cls, **values: str | None) -> None:
        _context.set(cls._merged(values))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    def bind(cls, **values: str | None) -> "_BoundContext":
        """``with LogContext.bind(goal_id=...)``: fields revert on exit."""
        return _BoundContext(cls._merged, values)


class _BoundContext:
    def __init__(self, merge, values: dict[str, str | None]) -> None:
        self._merge = merge
        self._values = values
        self._token: Token | None = None

    def __enter__(self) -> type[LogContext]:
        self._token = _context.set(self._merge(self._values))
        return LogContext

    def __exit__(self, *exc: Any) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message and public attributes (``exc_<name>``) of ``exc``."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    fields.update(
        (f"exc_{name}", value)
        for name, value in vars(exc).items()
        if not name.startswith("_") and name not in ("args", "code")
    )
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: envelope, bound context, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RESERVED_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """``get_logger("services.retry")`` -> ``pdca_kernel.services.retry``."""
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


_setup_lock = threading.Lock()
_is_configured = False


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
    structured: bool = True,
) -> None:
    """Attach one handler to the ``pdca_kernel`` logger.  Later calls are no-ops.

    With ``structured=False`` records use ``PLAIN_FORMAT`` instead of JSON.
    """
    global _is_configured
    with _setup_lock:
        if _is_configured:
            return
        _is_configured = True

    target = handler or logging.StreamHandler(stream or sys.stderr)
    target.setFormatter(
        StructuredFormatter() if structured else logging.Formatter(PLAIN_FORMAT)
    )
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.setLevel(level)
    namespace.propagate = False
    namespace.addHandler(target)


def reset_logging() -> None:
    """Undo ``configure_logging``.  Tests only."""
    global _is_configured
    with _setup_lock:
        _is_configured = False
    namespace = logging.getLogger(LOGGER_NAMESPACE)
    namespace.handlers.clear()
    namespace.setLevel(logging.NOTSET)
    namespace.propagate = True
