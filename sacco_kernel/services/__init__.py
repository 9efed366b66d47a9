"""Write-side services.  Every service flushes; the caller commits."""

from sacco_kernel.services.audit_service import AuditService
from sacco_kernel.services.return_workflow import ReturnWorkflowService
from sacco_kernel.services.sacco_registry import SaccoRegistryService
from sacco_kernel.services.user_service import UserService

__all__ = [
    "AuditService",
    "ReturnWorkflowService",
    "SaccoRegistryService",
    "UserService",
]
