"""
Pure domain layer: roles, authorization predicates, the return state
machine, period arithmetic, validation and DTOs.  No I/O.
"""

from sacco_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from sacco_kernel.domain.roles import REGULATOR_ROLES, SACCO_ROLES, Actor, Role
from sacco_kernel.domain.workflow import (
    MONTHLY_RETURN_WORKFLOW,
    ReturnAction,
    ReturnStatus,
    ReviewDecision,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "Actor",
    "Role",
    "SACCO_ROLES",
    "REGULATOR_ROLES",
    "MONTHLY_RETURN_WORKFLOW",
    "ReturnAction",
    "ReturnStatus",
    "ReviewDecision",
]
