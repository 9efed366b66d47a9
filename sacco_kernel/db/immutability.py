"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here intercept those events and raise
``ImmutabilityViolationError`` so the flush aborts and nothing is written:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity         | When Immutable                  | Why
---------------|---------------------------------|---------------------------------
FinancialData  | Parent return is Approved       | Approved figures are the record
Document       | Parent return is Approved       | Evidence behind an approval
AuditLog       | ALWAYS (from creation)          | Audit trail is append-only

The parent status is read through the flush connection rather than the
relationship so no lazy load fires mid-flush.

Usage:

    from sacco_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; init_engine_from_url calls it
"""

from sqlalchemy import event, select

from sacco_kernel.exceptions import ImmutabilityViolationError
from sacco_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _parent_is_approved(connection, return_id) -> bool:
    from sacco_kernel.domain.workflow import ReturnStatus
    from sacco_kernel.models.monthly_return import MonthlyReturn

    table = MonthlyReturn.__table__
    status = connection.execute(
        select(table.c.status).where(table.c.id == str(return_id))
    ).scalar()
    return status == ReturnStatus.APPROVED.value


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_financial_data_update(mapper, connection, target):
    """Approved financial data cannot change."""
    if _parent_is_approved(connection, target.return_id):
        _block(
            "FinancialData", target, "UPDATE",
            "Cannot modify financial data of an approved return",
        )


def _check_financial_data_delete(mapper, connection, target):
    if _parent_is_approved(connection, target.return_id):
        _block(
            "FinancialData", target, "DELETE",
            "Cannot delete financial data of an approved return",
        )


def _check_document_update(mapper, connection, target):
    if _parent_is_approved(connection, target.return_id):
        _block(
            "Document", target, "UPDATE",
            "Cannot modify documents of an approved return",
        )


def _check_document_delete(mapper, connection, target):
    if _parent_is_approved(connection, target.return_id):
        _block(
            "Document", target, "DELETE",
            "Cannot remove documents of an approved return",
        )


def _check_audit_log_update(mapper, connection, target):
    _block("AuditLog", target, "UPDATE", "Audit log entries are immutable")


def _check_audit_log_delete(mapper, connection, target):
    _block("AuditLog", target, "DELETE", "Audit log entries cannot be deleted")


def _listeners():
    from sacco_kernel.models.audit_log import AuditLog
    from sacco_kernel.models.monthly_return import Document, FinancialData

    return (
        (FinancialData, "before_update", _check_financial_data_update),
        (FinancialData, "before_delete", _check_financial_data_delete),
        (Document, "before_update", _check_document_update),
        (Document, "before_delete", _check_document_delete),
        (AuditLog, "before_update", _check_audit_log_update),
        (AuditLog, "before_delete", _check_audit_log_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that must bypass the rules on purpose.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
