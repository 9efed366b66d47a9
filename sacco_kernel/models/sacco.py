"""
Module: sacco_kernel.models.sacco
Responsibility: ORM persistence for the regulated entity (the SACCO).
Architecture position: Kernel > Models.  May import from db/ and the
    domain enums only.  MUST NOT import from services/ or selectors/.

Invariants enforced:
    - registration_number is globally unique (uq_sacco_registration_number).
    - A SACCO with affiliated users cannot be deleted (users FK is RESTRICT).
    - Deleting a SACCO cascades to its monthly returns; the registry refuses
      that delete before it reaches the database.

Failure modes:
    - IntegrityError on duplicate registration_number.
    - IntegrityError on delete while users reference the row.
"""

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sacco_kernel.db.base import TrackedBase
from sacco_kernel.domain.dtos import SaccoStatus, SaccoType

if TYPE_CHECKING:
    from sacco_kernel.models.monthly_return import MonthlyReturn
    from sacco_kernel.models.user import User


class Sacco(TrackedBase):
    """
    Savings and credit cooperative registered with the regulator.

    Contract:
        Each SACCO has a unique registration_number.  Status toggles between
        Active and Inactive; hard deletion is only possible with no
        dependents.
    """

    __tablename__ = "saccos"

    __table_args__ = (
        UniqueConstraint("registration_number", name="uq_sacco_registration_number"),
        Index("idx_sacco_name", "name"),
        Index("idx_sacco_status", "status"),
        Index("idx_sacco_county", "county"),
    )

    registration_number: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Location
    county: Mapped[str] = mapped_column(String(100), nullable=False)
    sub_county: Mapped[str | None] = mapped_column(String(100), nullable=True)

    registration_date: Mapped[date] = mapped_column(Date, nullable=False)

    sacco_type: Mapped[SaccoType | None] = mapped_column(String(20), nullable=True)

    # Contact
    contact_person: Mapped[str] = mapped_column(String(150), nullable=False)
    phone: Mapped[str] = mapped_column(String(30), nullable=False)
    email: Mapped[str | None] = mapped_column(String(150), nullable=True)
    address: Mapped[str | None] = mapped_column(String(300), nullable=True)

    status: Mapped[SaccoStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SaccoStatus.ACTIVE,
    )

    users: Mapped[list["User"]] = relationship(
        back_populates="sacco",
        passive_deletes="all",
    )

    monthly_returns: Mapped[list["MonthlyReturn"]] = relationship(
        back_populates="sacco",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_active(self) -> bool:
        return self.status == SaccoStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Sacco {self.registration_number}: {self.name}>"
