"""
Configuration schema (``pdca_config.schema``).

Frozen dataclasses for every section of the kernel configuration.  The
loader is the only producer of these objects; everything downstream
receives them as immutable values.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pdca_kernel.services.retry import RetryPolicy


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for ``SqlGoalRepository``.

    ``url`` None means the in-memory store is used instead.
    """

    url: str | None = None
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: float = 30.0
    create_tables: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    structured: bool = True


@dataclass(frozen=True)
class NotificationConfig:
    """Which notification sinks ``build_kernel`` wires up."""

    log_events: bool = True
    log_level: str = "INFO"


@dataclass(frozen=True)
class KernelConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    checksum: str = ""
