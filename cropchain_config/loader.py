"""
Configuration loader (``cropchain_config.loader``).

Responsibility
--------------
Reads YAML fragments, merges them in precedence order and parses the result
into the frozen dataclasses of ``cropchain_config.schema``.  Callers use
``cropchain_config.get_active_config()``; this module is its machinery.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown statuses, non-positive windows or a non-mapping document raise
  ``ConfigurationError`` naming the offending source.
* ``compute_checksum`` is deterministic for identical merged input.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from cropchain_config.schema import (
    BatchCodeConfig,
    CropChainConfig,
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    SchedulingConfig,
)
from cropchain_kernel.domain.statuses import CropBatchStatus
from cropchain_kernel.exceptions import ConfigurationError

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        ConfigurationError: if the file is not valid YAML or not a mapping.
    """
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(str(path), f"invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; override wins, lists are replaced whole."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if environ.get("DATABASE_URL"):
        overrides["database"] = {"url": environ["DATABASE_URL"]}
    if environ.get("CROPCHAIN_LOG_LEVEL"):
        overrides["logging"] = {"level": environ["CROPCHAIN_LOG_LEVEL"]}
    return merge(data, overrides)


def compute_checksum(data: Mapping[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: Mapping[str, Any], name: str, source: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigurationError(source, f"'{name}' must be a mapping")
    return section


def _positive_int(section: Mapping[str, Any], key: str, default: int, source: str) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(source, f"'{key}' must be a positive integer, got {value!r}")
    return value


def parse_database(section: Mapping[str, Any], source: str) -> DatabaseConfig:
    defaults = DatabaseConfig()
    url = section.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ConfigurationError(source, "database.url must be a non-empty string")
    return DatabaseConfig(
        url=url,
        echo=bool(section.get("echo", defaults.echo)),
        pool_size=_positive_int(section, "pool_size", defaults.pool_size, source),
        max_overflow=int(section.get("max_overflow", defaults.max_overflow)),
    )


def parse_scheduling(section: Mapping[str, Any], source: str) -> SchedulingConfig:
    raw = section.get("schedulable_statuses")
    if raw is None:
        return SchedulingConfig()
    if isinstance(raw, str) or not isinstance(raw, (list, tuple)) or not raw:
        raise ConfigurationError(source, "scheduling.schedulable_statuses must be a non-empty list")
    try:
        statuses = tuple(CropBatchStatus(str(s).upper()) for s in raw)
    except ValueError as exc:
        raise ConfigurationError(source, f"unknown crop batch status: {exc}") from exc
    return SchedulingConfig(schedulable_statuses=statuses)


def parse_config(data: Mapping[str, Any], source: str = "<config>") -> CropChainConfig:
    """
    Parse a merged configuration mapping.

    Raises:
        ConfigurationError: any section is malformed.
    """
    notifications = _section(data, "notifications", source)
    batch_codes = _section(data, "batch_codes", source)
    logging_section = _section(data, "logging", source)

    prefix = batch_codes.get("prefix", BatchCodeConfig().prefix)
    if not isinstance(prefix, str) or not prefix.strip():
        raise ConfigurationError(source, "batch_codes.prefix must be a non-empty string")

    level = str(logging_section.get("level", LoggingConfig().level)).upper()
    if level not in _LOG_LEVELS:
        raise ConfigurationError(source, f"unknown log level {level!r}")

    return CropChainConfig(
        database=parse_database(_section(data, "database", source), source),
        scheduling=parse_scheduling(_section(data, "scheduling", source), source),
        notifications=NotificationConfig(
            harvest_reminder_window_days=_positive_int(
                notifications,
                "harvest_reminder_window_days",
                NotificationConfig().harvest_reminder_window_days,
                source,
            ),
        ),
        batch_codes=BatchCodeConfig(prefix=prefix.strip()),
        logging=LoggingConfig(level=level),
        checksum=compute_checksum(data),
    )
