"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, clock injection and authorization
    helper for every write-side service.  All concrete services receive a
    SQLAlchemy ``Session`` that they use via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``session_scope()`` or the test harness) owns commit/rollback.
    - Authorization first: ``_authorize`` runs before any lookup whose
      outcome could reveal whether a record exists.
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

logger = get_logger("services.authorization")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source; defaults to SystemClock.
        """
        self.session = session
        self._clock = clock or SystemClock()

    def _authorize(self, allowed: bool, actor: Actor, operation: str) -> None:
        """Raise AuthorizationError unless ``allowed``."""
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
