"""
Identity and role model (``sacco_kernel.domain.roles``).

Responsibility
--------------
Closed enumeration of actor roles and the explicit ``Actor`` value that the
authentication collaborator hands to every core operation.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Two-tier scoping: SACCO-scoped roles act only on their affiliated SACCO;
  regulator roles have ministry-wide visibility.
* The core never looks up identity from ambient state; it trusts the
  ``Actor`` it is given.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """Actor roles."""

    SACCO_MANAGER = "SACCO_Manager"
    ACCOUNTS_OFFICER = "Accounts_Officer"
    DATA_ENTRY_OFFICER = "Data_Entry_Officer"
    ANALYST = "Analyst"
    SUPERVISOR = "Supervisor"
    SYSTEM_ADMIN = "System_Admin"


SACCO_ROLES: frozenset[Role] = frozenset({
    Role.SACCO_MANAGER,
    Role.ACCOUNTS_OFFICER,
    Role.DATA_ENTRY_OFFICER,
})

REGULATOR_ROLES: frozenset[Role] = frozenset({
    Role.ANALYST,
    Role.SUPERVISOR,
    Role.SYSTEM_ADMIN,
})


def requires_affiliation(role: Role) -> bool:
    """SACCO-scoped roles must carry an affiliated SACCO; ministry roles must not."""
    return role in SACCO_ROLES


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a core operation.

    Contract: frozen.  Supplied by the authentication collaborator; the
    core performs no credential verification.
    """

    id: UUID
    role: Role
    affiliated_sacco_id: UUID | None = None
    active: bool = True

    @property
    def is_sacco_scoped(self) -> bool:
        return self.role in SACCO_ROLES
