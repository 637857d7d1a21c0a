"""
cropchain_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration.
    Sources, lowest precedence first:

      1. the packaged ``defaults.yaml``
      2. an override file (argument, else ``$CROPCHAIN_CONFIG``)
      3. ``DATABASE_URL`` and ``CROPCHAIN_LOG_LEVEL`` from the environment

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ConfigurationError`` -- malformed YAML or invalid values.

Every successful call logs ``config_loaded`` with the merged checksum.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from cropchain_config.loader import apply_environment, load_yaml_file, merge, parse_config
from cropchain_config.schema import (
    BatchCodeConfig,
    CropChainConfig,
    DatabaseConfig,
    LoggingConfig,
    NotificationConfig,
    SchedulingConfig,
)
from cropchain_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "BatchCodeConfig",
    "CropChainConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "NotificationConfig",
    "SchedulingConfig",
    "get_active_config",
]


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> CropChainConfig:
    """Load, merge and validate the active configuration."""
    env = os.environ if environ is None else environ

    data = load_yaml_file(DEFAULTS_PATH)
    sources = [str(DEFAULTS_PATH)]

    override = config_path or env.get("CROPCHAIN_CONFIG")
    if override:
        data = merge(data, load_yaml_file(Path(override)))
        sources.append(str(override))

    data = apply_environment(data, env)
    config = parse_config(data, source=sources[-1])

    logger.info(
        "config_loaded",
        extra={
            "sources": sources,
            "checksum": config.checksum,
            "dialect": config.database.url.split(":", 1)[0],
        },
    )
    return config
