"""
Module: sacco_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    models/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses or computed
      values, never ORM instances.
    - Authorization first, exactly as in the services.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from sacco_kernel.db.base import Base
from sacco_kernel.domain.clock import Clock, SystemClock
from sacco_kernel.domain.roles import Actor
from sacco_kernel.exceptions import AuthorizationError
from sacco_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("selectors.authorization")


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source for "as of now" windows; defaults to SystemClock.
        """
        self.session = session
        self._clock = clock or SystemClock()

    def _authorize(self, allowed: bool, actor: Actor, operation: str) -> None:
        if allowed:
            return
        logger.warning(
            "authorization_denied",
            extra={
                "actor_id": str(actor.id),
                "role": actor.role.value,
                "operation": operation,
            },
        )
        raise AuthorizationError(str(actor.id), operation)
