"""
Module: sacco_kernel.models.monthly_return
Responsibility: ORM persistence for monthly returns and the records they
    own: one FinancialData row and any number of Document rows.
Architecture position: Kernel > Models.  May import from db/ and the
    domain enums only.

Invariants enforced:
    - At most one return per (sacco_id, reporting_month)
      (uq_return_sacco_month).  This index, not application code, is the
      final arbiter for concurrent drafts.
    - At most one FinancialData per return (uq_financial_data_return).
    - ``version`` is the optimistic-concurrency counter: every UPDATE of a
      return carries ``WHERE version = :loaded`` and bumps it.  A write
      based on a stale read raises StaleDataError.
    - Deleting a return cascades to its FinancialData and Documents.
    - FinancialData and Documents of an Approved return are immutable
      (enforced by db/immutability.py).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sacco_kernel.db.base import Base, TrackedBase, UUIDString
from sacco_kernel.db.types import FixedDecimal, UTCDateTime
from sacco_kernel.domain.dtos import DocumentType
from sacco_kernel.domain.workflow import ReturnStatus

if TYPE_CHECKING:
    from sacco_kernel.models.sacco import Sacco


class MonthlyReturn(TrackedBase):
    """
    One compliance submission for a (SACCO, reporting month) pair.

    Contract:
        reporting_month is always day 1 of its month.  Status changes only
        through the workflow service, which consults the transition table.
    """

    __tablename__ = "monthly_returns"

    __table_args__ = (
        UniqueConstraint("sacco_id", "reporting_month", name="uq_return_sacco_month"),
        Index("idx_return_status", "status"),
        Index("idx_return_month", "reporting_month"),
    )

    sacco_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("saccos.id", ondelete="CASCADE"),
        nullable=False,
    )

    reporting_month: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[ReturnStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReturnStatus.DRAFT,
    )

    # Submission
    submitted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    submission_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Review
    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    review_date: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    sacco: Mapped["Sacco"] = relationship(back_populates="monthly_returns")

    financial_data: Mapped["FinancialData | None"] = relationship(
        back_populates="monthly_return",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    documents: Mapped[list["Document"]] = relationship(
        back_populates="monthly_return",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Document.uploaded_at",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<MonthlyReturn {self.sacco_id} {self.reporting_month} {self.status}>"


class FinancialData(Base):
    """
    A SACCO's financial position for the return's month.

    Money columns are NUMERIC(18, 2); PAR ratios are NUMERIC(5, 2).
    """

    __tablename__ = "financial_data"

    __table_args__ = (
        UniqueConstraint("return_id", name="uq_financial_data_return"),
    )

    return_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("monthly_returns.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Capital & deposits
    share_capital: Mapped[Decimal] = mapped_column(nullable=False)
    member_deposits: Mapped[Decimal] = mapped_column(nullable=False)
    total_assets: Mapped[Decimal] = mapped_column(nullable=False)
    total_liabilities: Mapped[Decimal] = mapped_column(nullable=False)

    # Membership
    total_members: Mapped[int] = mapped_column(Integer, nullable=False)
    new_members: Mapped[int] = mapped_column(Integer, nullable=False)
    exited_members: Mapped[int] = mapped_column(Integer, nullable=False)

    # Loan portfolio
    total_loans_cumulative: Mapped[Decimal] = mapped_column(nullable=False)
    loans_issued_monthly: Mapped[Decimal] = mapped_column(nullable=False)
    loans_repaid_monthly: Mapped[Decimal] = mapped_column(nullable=False)
    outstanding_loan_balance: Mapped[Decimal] = mapped_column(nullable=False)
    number_of_loanees: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_earned_monthly: Mapped[Decimal] = mapped_column(nullable=False)

    # Portfolio quality
    par30: Mapped[Decimal] = mapped_column(FixedDecimal(5, 2), nullable=False)
    par60: Mapped[Decimal] = mapped_column(FixedDecimal(5, 2), nullable=False)
    par90: Mapped[Decimal] = mapped_column(FixedDecimal(5, 2), nullable=False)

    # Income & expenses
    total_income_monthly: Mapped[Decimal] = mapped_column(nullable=False)
    total_expenses_monthly: Mapped[Decimal] = mapped_column(nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    recorded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    monthly_return: Mapped["MonthlyReturn"] = relationship(back_populates="financial_data")


class Document(Base):
    """Supporting file metadata attached to a return."""

    __tablename__ = "documents"

    __table_args__ = (
        Index("idx_document_return", "return_id"),
        Index("idx_document_type", "return_id", "document_type"),
    )

    return_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("monthly_returns.id", ondelete="CASCADE"),
        nullable=False,
    )

    document_type: Mapped[DocumentType] = mapped_column(String(50), nullable=False)

    file_name: Mapped[str] = mapped_column(String(255), nullable=False)

    storage_path: Mapped[str] = mapped_column(String(500), nullable=False)

    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    uploaded_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    monthly_return: Mapped["MonthlyReturn"] = relationship(back_populates="documents")
