"""
Module: sacco_kernel.models.user
Responsibility: ORM persistence for user accounts.  Stores an opaque
    credential hash produced by the authentication collaborator; the kernel
    never computes or verifies it.
Architecture position: Kernel > Models.

Invariants enforced:
    - username is unique ignoring case (uq_user_username, on lower(username)).
    - email is unique ignoring case among non-null values (uq_user_email).
    - sacco_id references saccos.id with RESTRICT on delete.
    - Users are deactivated, never deleted.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sacco_kernel.db.base import TrackedBase, UUIDString
from sacco_kernel.db.types import UTCDateTime
from sacco_kernel.domain.roles import Actor, Role

if TYPE_CHECKING:
    from sacco_kernel.models.sacco import Sacco


class User(TrackedBase):
    """A person who signs in to file or review returns."""

    __tablename__ = "users"

    __table_args__ = (
        Index("idx_user_sacco", "sacco_id"),
        Index("idx_user_role", "role"),
    )

    username: Mapped[str] = mapped_column(String(50), nullable=False)

    email: Mapped[str | None] = mapped_column(String(150), nullable=True)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    role: Mapped[Role] = mapped_column(String(30), nullable=False)

    sacco_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("saccos.id", ondelete="RESTRICT"),
        nullable=True,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Opaque; produced and verified outside the kernel
    credential_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    last_login: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    sacco: Mapped["Sacco | None"] = relationship(back_populates="users")

    def to_actor(self) -> Actor:
        return Actor(
            id=self.id,
            role=Role(self.role),
            affiliated_sacco_id=self.sacco_id,
            active=self.is_active,
        )

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role})>"


# Uniqueness ignores case, matching how accounts are looked up
Index("uq_user_username", func.lower(User.username), unique=True)
Index("uq_user_email", func.lower(User.email), unique=True)
