"""
Configuration schema (``cropchain_config.schema``).

Frozen dataclasses produced by the loader.  Nothing here reads files or the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cropchain_kernel.domain.statuses import CropBatchStatus


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class SchedulingConfig:
    """Which batch statuses a coordinator may schedule transport from."""

    schedulable_statuses: tuple[CropBatchStatus, ...] = (
        CropBatchStatus.PROCESSED,
        CropBatchStatus.PACKAGED,
    )


@dataclass(frozen=True)
class NotificationConfig:
    harvest_reminder_window_days: int = 7


@dataclass(frozen=True)
class BatchCodeConfig:
    prefix: str = "CB"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class CropChainConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    batch_codes: BatchCodeConfig = field(default_factory=BatchCodeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
