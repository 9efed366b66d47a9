"""SQLAlchemy ORM models for the SACCO kernel."""

from sacco_kernel.models.audit_log import AuditAction, AuditLog
from sacco_kernel.models.monthly_return import Document, FinancialData, MonthlyReturn
from sacco_kernel.models.sacco import Sacco
from sacco_kernel.models.user import User

__all__ = [
    "AuditAction",
    "AuditLog",
    "Document",
    "FinancialData",
    "MonthlyReturn",
    "Sacco",
    "User",
]
