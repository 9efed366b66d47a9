"""
Module: sacco_kernel.models.audit_log
Responsibility: Append-only record of every mutation performed through the
    kernel services, with before and after values.
Architecture position: Kernel > Models.

Invariants enforced:
    - AuditLog rows are never updated or deleted (db/immutability.py).
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from sacco_kernel.db.base import Base, UUIDString
from sacco_kernel.db.types import UTCDateTime


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # SACCO lifecycle
    SACCO_CREATED = "sacco_created"
    SACCO_UPDATED = "sacco_updated"
    SACCO_DELETED = "sacco_deleted"
    SACCO_STATUS_CHANGED = "sacco_status_changed"

    # Return lifecycle
    RETURN_CREATED = "return_created"
    FINANCIAL_DATA_ATTACHED = "financial_data_attached"
    DOCUMENT_ATTACHED = "document_attached"
    DOCUMENT_REMOVED = "document_removed"
    RETURN_SUBMITTED = "return_submitted"
    RETURN_REVIEW_STARTED = "return_review_started"
    RETURN_APPROVED = "return_approved"
    RETURN_REJECTED = "return_rejected"
    RETURN_FLAGGED = "return_flagged"
    RETURN_REOPENED = "return_reopened"

    # User lifecycle
    USER_REGISTERED = "user_registered"
    USER_UPDATED = "user_updated"
    USER_DEACTIVATED = "user_deactivated"
    PROFILE_UPDATED = "profile_updated"
    USER_LOGIN = "user_login"


class AuditLog(Base):
    """One audited mutation."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_log_entity", "entity_type", "entity_id"),
        Index("idx_audit_log_actor", "actor_id"),
        Index("idx_audit_log_occurred", "occurred_at"),
    )

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    action: Mapped[AuditAction] = mapped_column(String(50), nullable=False)

    # e.g. "Sacco", "MonthlyReturn", "User"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
