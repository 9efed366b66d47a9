"""
Configuration Loader (``sacco_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``sacco_config.schema``.  Runtime callers go through
``sacco_config.get_active_config()``, never through this module.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Out-of-range values raise ``ValueError`` naming the key.
* ``compute_checksum`` is a deterministic SHA-256 of the parsed content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from sacco_config.schema import (
    ComplianceConfig,
    DatabaseConfig,
    DocumentConfig,
    KernelConfig,
    LoggingConfig,
)

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _positive_int(data: dict[str, Any], key: str, default: int, section: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"{section}.{key} must be a positive integer, got {value!r}")
    return value


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=str(data["url"]),
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 20, "database"),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=_positive_int(data, "pool_timeout", 30, "database"),
        pool_recycle=_positive_int(data, "pool_recycle", 1800, "database"),
    )


def parse_compliance(data: dict[str, Any]) -> ComplianceConfig:
    return ComplianceConfig(
        window_months=_positive_int(data, "window_months", 3, "compliance"),
        low_compliance_threshold=_positive_int(
            data, "low_compliance_threshold", 2, "compliance"
        ),
    )


def parse_documents(data: dict[str, Any]) -> DocumentConfig:
    return DocumentConfig(
        max_size_bytes=_positive_int(data, "max_size_bytes", 10 * 1024 * 1024, "documents"),
    )


def parse_logging(data: dict[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be a logging level name, got {level!r}")
    return LoggingConfig(level=level)


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_config(
    data: dict[str, Any],
    source: str,
    database_url: str | None = None,
) -> KernelConfig:
    """
    Parse a full configuration dict.

    Args:
        data: Parsed YAML.
        source: Where the data came from, recorded on the result.
        database_url: Replaces ``database.url`` when given.
    """
    database = dict(data.get("database") or {})
    if database_url:
        database["url"] = database_url
    resolved = {
        "database": database,
        "compliance": dict(data.get("compliance") or {}),
        "documents": dict(data.get("documents") or {}),
        "logging": dict(data.get("logging") or {}),
    }
    return KernelConfig(
        database=parse_database(resolved["database"]),
        compliance=parse_compliance(resolved["compliance"]),
        documents=parse_documents(resolved["documents"]),
        logging=parse_logging(resolved["logging"]),
        source=source,
        checksum=compute_checksum(resolved),
    )
