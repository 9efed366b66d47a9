"""
Authorization guard (``sacco_kernel.domain.authorization``).

Responsibility
--------------
Pure, side-effect-free predicates deciding whether an actor may view,
create, edit, delete or transition a SACCO or monthly return.  Services call
the relevant predicate before touching storage and raise
``AuthorizationError`` when it returns False.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  Imports only ``domain/roles``.

Invariants enforced
-------------------
* Inactive actors fail every predicate.
* ``can_view_sacco`` and ``can_view_return`` grant access to regulators or
  to actors affiliated with that exact SACCO.
* Only SACCO-scoped roles affiliated with the SACCO may create, edit or
  submit its returns.
* Only regulators may review.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sacco_kernel.domain.roles import REGULATOR_ROLES, SACCO_ROLES, Actor, Role


def is_regulator(actor: Actor) -> bool:
    """Analyst, Supervisor or System_Admin: ministry-wide visibility."""
    return actor.active and actor.role in REGULATOR_ROLES


def is_super_admin(actor: Actor) -> bool:
    return actor.active and actor.role == Role.SYSTEM_ADMIN


def _is_affiliated(actor: Actor, sacco_id: UUID) -> bool:
    return (
        actor.affiliated_sacco_id is not None
        and actor.affiliated_sacco_id == sacco_id
    )


def can_view_sacco(actor: Actor, sacco_id: UUID) -> bool:
    if not actor.active:
        return False
    return is_regulator(actor) or _is_affiliated(actor, sacco_id)


def can_edit_sacco(actor: Actor, sacco: Any = None) -> bool:
    """Only System_Admin edits SACCO records; ``sacco`` is accepted for symmetry."""
    return is_super_admin(actor)


def can_submit_return(actor: Actor, sacco_id: UUID) -> bool:
    """SACCO staff may create, edit, submit and reopen their own SACCO's returns."""
    if not actor.active:
        return False
    return actor.role in SACCO_ROLES and _is_affiliated(actor, sacco_id)


def can_review_return(actor: Actor) -> bool:
    return is_regulator(actor)


def can_view_return(actor: Actor, sacco_id: UUID) -> bool:
    """A return is visible to whoever can view its owning SACCO."""
    return can_view_sacco(actor, sacco_id)


def can_manage_users(actor: Actor) -> bool:
    return is_super_admin(actor)
