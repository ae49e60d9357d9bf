"""
Configuration Loader (``pdca_config.loader``).

Responsibility
--------------
Reads the kernel YAML file and turns each top-level section into its
frozen dataclass from ``pdca_config.schema``.

Architecture position
---------------------
**Config layer**.  Knows nothing about stores, engines or services.

Invariants enforced
-------------------
* A section or key the schema does not declare is an error, never skipped.
* Values are checked against the type of the field's default; integers
  widen to float fields, booleans never count as numbers.
* ``compute_checksum`` hashes the raw mapping in canonical key order.

Failure modes
-------------
* No such file -> ``FileNotFoundError``.
* Broken YAML -> ``yaml.YAMLError``.
* Shape or type mismatch -> ``ValueError`` naming ``section.key``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Callable

import yaml

from pdca_config.schema import (
    DatabaseConfig,
    KernelConfig,
    LoggingConfig,
    NotificationConfig,
    RetryPolicy,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "logging": LoggingConfig,
    "retry": RetryPolicy,
    "notifications": NotificationConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Read ``path``; an empty file yields ``{}``."""
    text = Path(path).read_text()
    loaded = yaml.safe_load(text)
    if loaded is None:
        return {}
    if isinstance(loaded, dict):
        return loaded
    raise ValueError(f"{path}: top level must be a mapping, got {type(loaded).__name__}")


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


# Ordered: bool is an int subclass, so it has to be tested first.
_CHECKS: tuple[tuple[type, Callable[[Any], bool], str], ...] = (
    (bool, _is_bool, "a boolean"),
    (int, _is_number, "a number"),
    (float, _is_number, "a number"),
    (str, _is_str, "a string"),
)


def _checked(where: str, value: Any, default: Any) -> Any:
    if value is None or default is None:
        return value
    for kind, accepts, label in _CHECKS:
        if not isinstance(default, kind):
            continue
        if not accepts(value):
            raise ValueError(f"{where} must be {label}, got {value!r}")
        return float(value) if kind is float else value
    return value


def parse_section(section: str, data: Any) -> Any:
    """Build the dataclass for ``section``; ``None`` means all defaults."""
    cls = _SECTIONS[section]
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ValueError(f"Section '{section}' must be a mapping")

    declared = {field.name for field in fields(cls)}
    extra = sorted(key for key in data if key not in declared)
    if extra:
        raise ValueError(f"Unknown keys in '{section}': {', '.join(extra)}")

    baseline = cls()
    values = {}
    for key, raw in data.items():
        values[key] = _checked(f"{section}.{key}", raw, getattr(baseline, key))
    return cls(**values)


def parse_config(data: dict[str, Any]) -> KernelConfig:
    extra = sorted(name for name in data if name not in _SECTIONS)
    if extra:
        raise ValueError(f"Unknown configuration sections: {', '.join(extra)}")
    sections = {name: parse_section(name, data.get(name)) for name in _SECTIONS}
    return KernelConfig(**sections, checksum=compute_checksum(data))


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
