"""
Structured JSON logging for the SACCO kernel.

Every record under the ``sacco_kernel`` logger becomes one JSON line.  The
line carries the fields bound in ``LogContext`` (who is acting, on which
SACCO and return), any ``extra=`` fields of the call, and for kernel errors
their structured attributes prefixed with ``exc_``.

Services log events, not sentences::

    logger.info("return_submitted", extra={"from_status": "Draft"})
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Mapping
from uuid import UUID

_ROOT = "sacco_kernel"
_HANDLER_NAME = "sacco_kernel.structured"


class LogContext:
    """Request-scoped identifiers attached to every log line."""

    FIELDS = ("correlation_id", "actor_id", "sacco_id", "return_id")

    _current: ContextVar[Mapping[str, str]] = ContextVar("sacco_log_context", default={})

    @classmethod
    def _merged(cls, fields: dict[str, Any]) -> dict[str, str]:
        unknown = set(fields) - set(cls.FIELDS)
        if unknown:
            raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
        merged = dict(cls._current.get())
        merged.update({k: str(v) for k, v in fields.items() if v is not None})
        return merged

    @classmethod
    def set(cls, **fields: Any) -> None:
        """Set fields for the rest of the current context.  None is skipped."""
        cls._current.set(cls._merged(fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(cls._current.get())

    @classmethod
    def clear(cls) -> None:
        cls._current.set({})

    @classmethod
    @contextmanager
    def bind(cls, **fields: Any) -> Iterator[None]:
        """Set fields for the ``with`` block only."""
        token = cls._current.set(cls._merged(fields))
        try:
            yield
        finally:
            cls._current.reset(token)


_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _json_default(value: Any) -> Any:
    """Ids, money, months and statuses as they appear in the domain."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # Kernel errors keep their context as plain attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for name, value in vars(record).items():
            if name not in _RECORD_ATTRS:
                payload.setdefault(name, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_error_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``sacco_kernel`` namespace."""
    return logging.getLogger(f"{_ROOT}.{name}")


def _installed_handler(root: logging.Logger) -> logging.Handler | None:
    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            return handler
    return None


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Install the JSON handler on the ``sacco_kernel`` logger.

    A second call is a no-op, so the engine can call this without
    overriding what an application or test suite configured first.
    ``level`` accepts the names used in configuration files ("INFO").
    """
    root = logging.getLogger(_ROOT)
    if _installed_handler(root) is not None:
        return

    h = handler or logging.StreamHandler(stream or sys.stderr)
    h.set_name(_HANDLER_NAME)
    h.setFormatter(StructuredFormatter())
    root.addHandler(h)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.propagate = False


def reset_logging() -> None:
    """Remove the JSON handler so ``configure_logging`` applies again."""
    root = logging.getLogger(_ROOT)
    installed = _installed_handler(root)
    if installed is not None:
        root.removeHandler(installed)
    root.setLevel(logging.NOTSET)
    root.propagate = True
