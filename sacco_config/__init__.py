"""
sacco_config -- single public entrypoint for kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``KernelConfig``.

Architecture position:
    Configuration sits above ``sacco_kernel``.  The kernel MUST NEVER
    import from ``sacco_config``; callers read the config and pass the
    values they need (database URL, compliance window, document size cap)
    into the kernel.

Resolution order:
    1. ``path`` argument, if given.
    2. ``SRDCS_CONFIG`` environment variable, if set.
    3. ``defaults.yaml`` shipped with this package.
    ``DATABASE_URL``, when set, replaces ``database.url`` in any case.

Failure modes:
    - ``FileNotFoundError`` -- the selected file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sacco_config.loader import load_yaml_file, parse_config
from sacco_config.schema import (
    ComplianceConfig,
    DatabaseConfig,
    DocumentConfig,
    KernelConfig,
    LoggingConfig,
)

_logger = logging.getLogger("sacco_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "SRDCS_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> KernelConfig:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned ``KernelConfig`` has passed schema validation.
        - A ``sacco_config_loaded`` log entry carrying the source and
          checksum is emitted on every successful call.
    """
    if path is None:
        path = os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH
    path = Path(path)

    config = parse_config(
        load_yaml_file(path),
        source=str(path),
        database_url=os.environ.get(DATABASE_URL_ENV),
    )

    _logger.info(
        "sacco_config_loaded",
        extra={
            "source": config.source,
            "checksum": config.checksum,
            "window_months": config.compliance.window_months,
        },
    )
    return config


__all__ = [
    "ComplianceConfig",
    "DatabaseConfig",
    "DocumentConfig",
    "KernelConfig",
    "LoggingConfig",
    "get_active_config",
]
