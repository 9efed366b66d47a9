"""
SaccoRegistryService -- the regulated-entity register.

Responsibility:
    Create, update, read, search, delete and activate/deactivate SACCO
    records, enforcing registration-number uniqueness and the
    no-dependents rule for hard deletion.

Architecture position:
    Kernel > Services.  Reads and writes ``Sacco`` rows; returns
    ``SaccoInfo`` DTOs only.

Invariants enforced:
    - Only System_Admin mutates the register.
    - registration_number is unique.  The pre-check gives a clean error;
      the unique index is the final arbiter (IntegrityError inside a
      savepoint is translated to DuplicateRegistrationNumberError).
    - A SACCO with users or returns is never hard-deleted.
    - Visibility is checked before lookup, so existence never leaks.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sacco_kernel.domain.authorization import (
    can_edit_sacco,
    can_view_sacco,
    is_regulator,
    is_super_admin,
)
from sacco_kernel.domain.clock import Clock
from sacco_kernel.domain.dtos import SaccoInfo, SaccoInput, SaccoStatus
from sacco_kernel.domain.roles import Actor
from sacco_kernel.domain.validation import validate_sacco
from sacco_kernel.exceptions import (
    DuplicateRegistrationNumberError,
    SaccoHasDependentsError,
    SaccoNotFoundError,
)
from sacco_kernel.logging_config import LogContext, get_logger
from sacco_kernel.models.audit_log import AuditAction
from sacco_kernel.models.monthly_return import MonthlyReturn
from sacco_kernel.models.sacco import Sacco
from sacco_kernel.models.user import User
from sacco_kernel.services.audit_service import AuditService
from sacco_kernel.services.base import BaseService

logger = get_logger("services.sacco_registry")

_EDITABLE_FIELDS = (
    "registration_number",
    "name",
    "county",
    "sub_county",
    "registration_date",
    "sacco_type",
    "contact_person",
    "phone",
    "email",
    "address",
)

_SEARCH_COLUMNS = (
    Sacco.registration_number,
    Sacco.name,
    Sacco.county,
    Sacco.contact_person,
)


def _snapshot(sacco: Sacco) -> dict:
    values = {name: getattr(sacco, name) for name in _EDITABLE_FIELDS}
    values["status"] = sacco.status
    return values


class SaccoRegistryService(BaseService[Sacco]):
    """
    Service for the SACCO register.

    All public methods return SaccoInfo DTOs, not ORM Sacco entities.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditService(session, self._clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, sacco_id: UUID, for_update: bool = False) -> Sacco:
        stmt = select(Sacco).where(Sacco.id == sacco_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        sacco = self.session.execute(stmt).scalar_one_or_none()
        if sacco is None:
            raise SaccoNotFoundError(str(sacco_id))
        return sacco

    def _registration_taken(
        self, registration_number: str, exclude_id: UUID | None = None
    ) -> bool:
        stmt = select(Sacco.id).where(Sacco.registration_number == registration_number)
        if exclude_id is not None:
            stmt = stmt.where(Sacco.id != exclude_id)
        return self.session.execute(stmt.limit(1)).first() is not None

    @contextmanager
    def _registration_guard(self, registration_number: str) -> Iterator[None]:
        """Apply changes inside a savepoint; the unique index settles races."""
        try:
            with self.session.begin_nested():
                yield
        except IntegrityError as exc:
            logger.warning(
                "sacco_registration_conflict",
                extra={"registration_number": registration_number},
            )
            raise DuplicateRegistrationNumberError(registration_number) from exc

    def _visible_query(self, actor: Actor):
        if is_regulator(actor):
            return select(Sacco)
        if actor.active and actor.affiliated_sacco_id is not None:
            return select(Sacco).where(Sacco.id == actor.affiliated_sacco_id)
        return None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(self, data: SaccoInput, actor: Actor) -> SaccoInfo:
        """
        Register a new SACCO.

        Raises:
            AuthorizationError: Actor is not System_Admin.
            ValidationError: A required field is blank or the registration
                date is in the future.
            DuplicateRegistrationNumberError: Number already registered.
        """
        self._authorize(is_super_admin(actor), actor, "create SACCO")
        data = validate_sacco(data, self._clock.today())

        if self._registration_taken(data.registration_number):
            logger.warning(
                "sacco_registration_conflict",
                extra={"registration_number": data.registration_number},
            )
            raise DuplicateRegistrationNumberError(data.registration_number)

        now = self._clock.now_utc()
        sacco = Sacco(
            registration_number=data.registration_number,
            name=data.name,
            county=data.county,
            sub_county=data.sub_county,
            registration_date=data.registration_date,
            sacco_type=data.sacco_type,
            contact_person=data.contact_person,
            phone=data.phone,
            email=data.email,
            address=data.address,
            status=SaccoStatus.ACTIVE,
            created_at=now,
            updated_at=now,
            created_by_id=actor.id,
            updated_by_id=actor.id,
        )
        with self._registration_guard(data.registration_number):
            self.session.add(sacco)

        self._auditor.record(
            AuditAction.SACCO_CREATED, "Sacco", sacco.id, actor.id,
            new_values=_snapshot(sacco),
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=sacco.id):
            logger.info(
                "sacco_created",
                extra={"registration_number": sacco.registration_number},
            )
        return SaccoInfo.from_model(sacco)

    def update(self, sacco_id: UUID, data: SaccoInput, actor: Actor) -> SaccoInfo:
        """
        Replace a SACCO's registration details.  Status is left alone;
        use ``toggle_status`` for that.

        Raises:
            AuthorizationError: Actor may not edit SACCOs.
            SaccoNotFoundError: No SACCO with this id.
            ValidationError: As for ``create``.
            DuplicateRegistrationNumberError: New number belongs to another SACCO.
        """
        self._authorize(can_edit_sacco(actor), actor, "update SACCO")
        sacco = self._get(sacco_id, for_update=True)
        data = validate_sacco(data, self._clock.today())

        if data.registration_number != sacco.registration_number and (
            self._registration_taken(data.registration_number, exclude_id=sacco.id)
        ):
            logger.warning(
                "sacco_registration_conflict",
                extra={"registration_number": data.registration_number},
            )
            raise DuplicateRegistrationNumberError(data.registration_number)

        before = _snapshot(sacco)
        with self._registration_guard(data.registration_number):
            for name in _EDITABLE_FIELDS:
                setattr(sacco, name, getattr(data, name))
            sacco.updated_at = self._clock.now_utc()
            sacco.updated_by_id = actor.id

        self._auditor.record(
            AuditAction.SACCO_UPDATED, "Sacco", sacco.id, actor.id,
            old_values=before, new_values=_snapshot(sacco),
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=sacco.id):
            logger.info("sacco_updated")
        return SaccoInfo.from_model(sacco)

    def delete(self, sacco_id: UUID, actor: Actor) -> None:
        """
        Hard-delete a SACCO that has no users and no returns.

        Raises:
            AuthorizationError: Actor is not System_Admin.
            SaccoNotFoundError: No SACCO with this id.
            SaccoHasDependentsError: Users or returns reference it.
        """
        self._authorize(is_super_admin(actor), actor, "delete SACCO")
        sacco = self._get(sacco_id, for_update=True)

        user_count = self.session.execute(
            select(func.count()).select_from(User).where(User.sacco_id == sacco.id)
        ).scalar_one()
        if user_count:
            logger.warning(
                "sacco_delete_blocked",
                extra={"sacco_id": str(sacco.id), "dependent": "users"},
            )
            raise SaccoHasDependentsError(str(sacco.id), "users")

        return_count = self.session.execute(
            select(func.count())
            .select_from(MonthlyReturn)
            .where(MonthlyReturn.sacco_id == sacco.id)
        ).scalar_one()
        if return_count:
            logger.warning(
                "sacco_delete_blocked",
                extra={"sacco_id": str(sacco.id), "dependent": "returns"},
            )
            raise SaccoHasDependentsError(str(sacco.id), "returns")

        before = _snapshot(sacco)
        self.session.delete(sacco)
        self.session.flush()

        self._auditor.record(
            AuditAction.SACCO_DELETED, "Sacco", sacco_id, actor.id,
            old_values=before,
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=sacco_id):
            logger.info("sacco_deleted")

    def toggle_status(self, sacco_id: UUID, actor: Actor) -> SaccoInfo:
        """Flip Active <-> Inactive and stamp the editor."""
        self._authorize(can_edit_sacco(actor), actor, "change SACCO status")
        sacco = self._get(sacco_id, for_update=True)

        old_status = SaccoStatus(sacco.status)
        new_status = (
            SaccoStatus.INACTIVE
            if old_status == SaccoStatus.ACTIVE
            else SaccoStatus.ACTIVE
        )
        sacco.status = new_status
        sacco.updated_at = self._clock.now_utc()
        sacco.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.SACCO_STATUS_CHANGED, "Sacco", sacco.id, actor.id,
            old_values={"status": old_status}, new_values={"status": new_status},
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=sacco.id):
            logger.info(
                "sacco_status_changed",
                extra={"from_status": old_status.value, "to_status": new_status.value},
            )
        return SaccoInfo.from_model(sacco)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, sacco_id: UUID, actor: Actor) -> SaccoInfo:
        """
        Raises:
            AuthorizationError: Actor may not view this SACCO (checked
                before lookup).
            SaccoNotFoundError: No SACCO with this id.
        """
        self._authorize(can_view_sacco(actor, sacco_id), actor, "view SACCO")
        return SaccoInfo.from_model(self._get(sacco_id))

    def list_visible_to(self, actor: Actor) -> list[SaccoInfo]:
        """
        Regulators see every SACCO (any status) ordered by name; affiliated
        staff see their own; everyone else gets an empty list.
        """
        stmt = self._visible_query(actor)
        if stmt is None:
            return []
        rows = self.session.execute(stmt.order_by(Sacco.name, Sacco.id)).scalars()
        return [SaccoInfo.from_model(s) for s in rows]

    def search(self, term: str | None, actor: Actor) -> list[SaccoInfo]:
        """
        Case-insensitive substring search over registration number, name,
        county and contact person within what the actor can see.  A blank
        term returns the full visible list.
        """
        stmt = self._visible_query(actor)
        if stmt is None:
            return []
        term = (term or "").strip()
        if term:
            stmt = stmt.where(
                or_(*(col.icontains(term, autoescape=True)
                      for col in _SEARCH_COLUMNS))
            )
        rows = self.session.execute(stmt.order_by(Sacco.name, Sacco.id)).scalars()
        return [SaccoInfo.from_model(s) for s in rows]
