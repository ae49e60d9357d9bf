"""
pdca_config -- single public entrypoint for kernel configuration.

Responsibility:
    Provides the one way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``KernelConfig``.

Architecture position:
    Configuration -- sits beside ``pdca_kernel``; only
    ``pdca_kernel.bootstrap`` consumes it.  Services receive the pieces
    they need (a ``RetryPolicy``, a session factory) as values.

Sources (highest precedence first):
    1. The ``path`` argument.
    2. The ``PDCA_CONFIG`` environment variable.
    3. The packaged ``defaults.yaml``.
    ``DATABASE_URL``, when set, overrides ``database.url`` from any source.

Failure modes:
    - ``FileNotFoundError`` -- an explicit or env-provided path is missing.
    - ``ValueError`` -- schema validation failures.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from pdca_config.loader import compute_checksum, load_yaml_file, parse_config
from pdca_config.schema import (
    DatabaseConfig,
    KernelConfig,
    LoggingConfig,
    NotificationConfig,
    RetryPolicy,
)

_logger = logging.getLogger("pdca_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "PDCA_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_config(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> KernelConfig:
    """Load, validate and return the active ``KernelConfig``."""
    env = os.environ if environ is None else environ
    source = Path(path) if path else None
    if source is None and env.get(CONFIG_ENV_VAR):
        source = Path(env[CONFIG_ENV_VAR])
    if source is None:
        source = DEFAULTS_PATH

    config = parse_config(load_yaml_file(source))

    db_url = env.get(DATABASE_URL_ENV_VAR)
    if db_url:
        config = replace(config, database=replace(config.database, url=db_url))

    _logger.info(
        "pdca_config_loaded",
        extra={
            "config_source": str(source),
            "checksum": config.checksum,
            "store": "sql" if config.database.url else "memory",
        },
    )
    return config


__all__ = [
    "DatabaseConfig",
    "KernelConfig",
    "LoggingConfig",
    "NotificationConfig",
    "RetryPolicy",
    "compute_checksum",
    "get_active_config",
]
