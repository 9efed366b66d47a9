"""Read-only selectors.  Selectors never flush, add or delete."""

from sacco_kernel.selectors.compliance_selector import ComplianceSelector
from sacco_kernel.selectors.return_selector import ReturnSelector

__all__ = [
    "ComplianceSelector",
    "ReturnSelector",
]
