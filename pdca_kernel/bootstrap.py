"""
Module: pdca_kernel.bootstrap
Responsibility: Build a fully wired kernel (stores, notification sinks and
    services) from a ``KernelConfig``.  The single production entrypoint.

Architecture position: Kernel > composition root.  The only kernel module
    that reads ``pdca_config``; it does so lazily so the rest of the kernel
    stays importable without it.

Failure modes:
    - FileNotFoundError / ValueError from ``get_active_config`` when no
      config is passed and the active source is missing or invalid.
    - sqlalchemy errors from ``create_tables`` if the database is
      unreachable at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.engine import Engine

from pdca_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from pdca_kernel.domain.clock import Clock, SystemClock
from pdca_kernel.logging_config import configure_logging, get_logger
from pdca_kernel.services.assignee_tracker import AssigneeCompletionTracker
from pdca_kernel.services.goal_activity import GoalActivityService
from pdca_kernel.services.history_recorder import HistoryRecorder
from pdca_kernel.services.notifications import (
    CompositeNotificationSink,
    LoggingNotificationSink,
)
from pdca_kernel.services.retry import RetryPolicy
from pdca_kernel.services.workflow_engine import WorkflowEngine
from pdca_kernel.stores.in_memory import InMemoryGoalRepository
from pdca_kernel.stores.sql_store import SqlGoalRepository

if TYPE_CHECKING:
    from pdca_config.schema import KernelConfig
    from pdca_kernel.domain.ports import NotificationSink

logger = get_logger("bootstrap")


@dataclass(frozen=True)
class Kernel:
    """Wired services sharing one repository, clock and notifier."""

    repository: InMemoryGoalRepository | SqlGoalRepository
    engine: WorkflowEngine
    tracker: AssigneeCompletionTracker
    activity: GoalActivityService
    retry_policy: RetryPolicy
    db_engine: Engine | None = None


def build_kernel(
    config: KernelConfig | None = None,
    *,
    clock: Clock | None = None,
    extra_sinks: tuple[NotificationSink, ...] = (),
) -> Kernel:
    """Build a Kernel from config (single entrypoint for production).

    Args:
        config: Loaded configuration; ``get_active_config()`` when None.
        clock: Optional clock; default SystemClock.
        extra_sinks: Sinks notified after the configured logging sink.

    Returns:
        Kernel backed by ``InMemoryGoalRepository`` when ``database.url``
        is unset, otherwise by ``SqlGoalRepository``.
    """
    if config is None:
        from pdca_config import get_active_config

        config = get_active_config()

    configure_logging(
        level=config.logging.level.upper(),
        structured=config.logging.structured,
    )

    db_engine: Engine | None = None
    repository: InMemoryGoalRepository | SqlGoalRepository
    if config.database.url is None:
        repository = InMemoryGoalRepository()
    else:
        db_engine = init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
            pool_timeout=config.database.pool_timeout,
        )
        if config.database.create_tables:
            create_tables(db_engine)
        repository = SqlGoalRepository(get_session_factory())

    sinks: list[NotificationSink] = []
    if config.notifications.log_events:
        sinks.append(LoggingNotificationSink(config.notifications.log_level))
    sinks.extend(extra_sinks)
    notifier = CompositeNotificationSink(sinks)

    clock = clock or SystemClock()
    recorder = HistoryRecorder(clock)

    kernel = Kernel(
        repository=repository,
        engine=WorkflowEngine(
            repository, repository, repository, repository,
            notifier=notifier, clock=clock, recorder=recorder,
        ),
        tracker=AssigneeCompletionTracker(
            repository, repository, repository,
            notifier=notifier, clock=clock, recorder=recorder,
        ),
        activity=GoalActivityService(
            repository, repository, repository, repository,
            notifier=notifier, clock=clock, recorder=recorder,
        ),
        retry_policy=config.retry,
        db_engine=db_engine,
    )

    logger.info(
        "kernel_built",
        extra={
            "store": type(repository).__name__,
            "sink_count": len(sinks),
            "config_checksum": config.checksum,
        },
    )
    return kernel
