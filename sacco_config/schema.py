"""
Kernel configuration schema.

Frozen dataclasses the loader parses ``defaults.yaml`` (or an override
file) into.  Nothing here reads files or the environment.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


@dataclass(frozen=True)
class ComplianceConfig:
    """Trailing window and watch-list threshold for the compliance aggregates."""

    window_months: int = 3
    low_compliance_threshold: int = 2


@dataclass(frozen=True)
class DocumentConfig:
    max_size_bytes: int = 10 * 1024 * 1024


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class KernelConfig:
    """The validated runtime configuration."""

    database: DatabaseConfig
    compliance: ComplianceConfig
    documents: DocumentConfig
    logging: LoggingConfig
    source: str
    checksum: str
