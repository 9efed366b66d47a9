"""
AuditService -- append-only audit trail for kernel mutations.

Every service that changes a SACCO, a return or a user records one
``AuditLog`` row in the same transaction, carrying the values before and
after the change.  Reading the trail back for display is outside the
kernel.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sacco_kernel.logging_config import get_logger
from sacco_kernel.models.audit_log import AuditAction, AuditLog
from sacco_kernel.services.base import BaseService

logger = get_logger("services.audit")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


class AuditService(BaseService[AuditLog]):
    """Writes AuditLog rows.  Never updates or deletes them."""

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID,
        actor_id: UUID | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        """
        Append an audit entry and flush it.

        Values are converted to JSON-safe primitives: Decimal and UUID become
        strings, dates become ISO-8601.
        """
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=_jsonable(old_values),
            new_values=_jsonable(new_values),
            occurred_at=self._clock.now_utc(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "audit_recorded",
            extra={
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return entry
