"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    caller-supplied inputs (SaccoInput, FinancialDataInput, DocumentInput,
    UserInput) and the read-side records services and selectors return
    (SaccoInfo, MonthlyReturnInfo, FinancialDataInfo, DocumentInfo,
    UserInfo, LowComplianceSacco).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  Services and selectors build these from
    ORM rows in their ``_to_dto`` methods; ORM instances never leave the
    kernel.

Invariants enforced:
    - Money is ``Decimal`` with 2 fractional digits, never ``float``.
    - Timestamps are timezone-aware UTC.
    - ``reporting_month`` is always day 1 of its month.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sacco_kernel.domain.roles import Role
from sacco_kernel.domain.workflow import ReturnStatus

if TYPE_CHECKING:
    from sacco_kernel.models.monthly_return import (
        Document as DocumentModel,
        FinancialData as FinancialDataModel,
        MonthlyReturn as MonthlyReturnModel,
    )
    from sacco_kernel.models.sacco import Sacco as SaccoModel
    from sacco_kernel.models.user import User as UserModel

_ZERO = Decimal("0.00")


class SaccoStatus(str, Enum):
    """SACCO registration status."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"


class SaccoType(str, Enum):
    """Regulatory tier."""

    DEPOSIT_TAKING = "Deposit_Taking"
    NON_DT = "Non_DT"


class DocumentType(str, Enum):
    """Supporting document categories.

    Every type except OTHER_SUPPORTING is single-valued per return.
    """

    AUDITED_ACCOUNTS = "Audited_Accounts"
    MANAGEMENT_REPORT = "Management_Report"
    BOARD_RESOLUTION = "Board_Resolution"
    OTHER_SUPPORTING = "Other_Supporting"


# =========================================================================
# SACCO
# =========================================================================


@dataclass(frozen=True)
class SaccoInput:
    """Caller-supplied SACCO registration details for create and update."""

    registration_number: str
    name: str
    county: str
    contact_person: str
    phone: str
    registration_date: date | None
    sub_county: str | None = None
    sacco_type: SaccoType | None = None
    email: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class SaccoInfo:
    id: UUID
    registration_number: str
    name: str
    county: str
    sub_county: str | None
    registration_date: date
    sacco_type: SaccoType | None
    contact_person: str
    phone: str
    email: str | None
    address: str | None
    status: SaccoStatus
    created_at: datetime
    created_by_id: UUID
    updated_at: datetime
    updated_by_id: UUID | None

    @property
    def is_active(self) -> bool:
        return self.status == SaccoStatus.ACTIVE

    @classmethod
    def from_model(cls, model: SaccoModel) -> SaccoInfo:
        """Create a SaccoInfo from a Sacco ORM model."""
        return cls(
            id=model.id,
            registration_number=model.registration_number,
            name=model.name,
            county=model.county,
            sub_county=model.sub_county,
            registration_date=model.registration_date,
            sacco_type=SaccoType(model.sacco_type) if model.sacco_type else None,
            contact_person=model.contact_person,
            phone=model.phone,
            email=model.email,
            address=model.address,
            status=SaccoStatus(model.status),
            created_at=model.created_at,
            created_by_id=model.created_by_id,
            updated_at=model.updated_at,
            updated_by_id=model.updated_by_id,
        )


# =========================================================================
# Financial data
# =========================================================================


@dataclass(frozen=True)
class FinancialDataInput:
    """
    A SACCO's monthly financial position as entered by its staff.

    Money fields are Decimal with at most 2 fractional digits.  Counts are
    non-negative ints.  PAR ratios are percentages in [0, 100].
    """

    share_capital: Decimal = _ZERO
    member_deposits: Decimal = _ZERO
    total_assets: Decimal = _ZERO
    total_liabilities: Decimal = _ZERO
    total_members: int = 0
    new_members: int = 0
    exited_members: int = 0
    total_loans_cumulative: Decimal = _ZERO
    loans_issued_monthly: Decimal = _ZERO
    loans_repaid_monthly: Decimal = _ZERO
    outstanding_loan_balance: Decimal = _ZERO
    number_of_loanees: int = 0
    interest_earned_monthly: Decimal = _ZERO
    par30: Decimal = _ZERO
    par60: Decimal = _ZERO
    par90: Decimal = _ZERO
    total_income_monthly: Decimal = _ZERO
    total_expenses_monthly: Decimal = _ZERO


MONEY_FIELDS: tuple[str, ...] = (
    "share_capital",
    "member_deposits",
    "total_assets",
    "total_liabilities",
    "total_loans_cumulative",
    "loans_issued_monthly",
    "loans_repaid_monthly",
    "outstanding_loan_balance",
    "interest_earned_monthly",
    "total_income_monthly",
    "total_expenses_monthly",
)

COUNT_FIELDS: tuple[str, ...] = (
    "total_members",
    "new_members",
    "exited_members",
    "number_of_loanees",
)

RATIO_FIELDS: tuple[str, ...] = ("par30", "par60", "par90")

FINANCIAL_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(FinancialDataInput))


@dataclass(frozen=True)
class FinancialDataInfo:
    id: UUID
    return_id: UUID
    share_capital: Decimal
    member_deposits: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_members: int
    new_members: int
    exited_members: int
    total_loans_cumulative: Decimal
    loans_issued_monthly: Decimal
    loans_repaid_monthly: Decimal
    outstanding_loan_balance: Decimal
    number_of_loanees: int
    interest_earned_monthly: Decimal
    par30: Decimal
    par60: Decimal
    par90: Decimal
    total_income_monthly: Decimal
    total_expenses_monthly: Decimal

    @classmethod
    def from_model(cls, model: FinancialDataModel) -> FinancialDataInfo:
        """Create a FinancialDataInfo from a FinancialData ORM model."""
        return cls(
            id=model.id,
            return_id=model.return_id,
            **{name: getattr(model, name) for name in FINANCIAL_FIELDS},
        )

    def as_input(self) -> FinancialDataInput:
        """The same figures as an input, for editing a reopened return."""
        return FinancialDataInput(
            **{name: getattr(self, name) for name in FINANCIAL_FIELDS}
        )


# =========================================================================
# Documents
# =========================================================================


@dataclass(frozen=True)
class DocumentInput:
    """Metadata for an uploaded file; the bytes live with the storage collaborator."""

    document_type: DocumentType
    file_name: str
    storage_path: str
    size_bytes: int


@dataclass(frozen=True)
class DocumentInfo:
    id: UUID
    return_id: UUID
    document_type: DocumentType
    file_name: str
    storage_path: str
    size_bytes: int
    uploaded_by_id: UUID
    uploaded_at: datetime

    @classmethod
    def from_model(cls, model: DocumentModel) -> DocumentInfo:
        return cls(
            id=model.id,
            return_id=model.return_id,
            document_type=DocumentType(model.document_type),
            file_name=model.file_name,
            storage_path=model.storage_path,
            size_bytes=model.size_bytes,
            uploaded_by_id=model.uploaded_by_id,
            uploaded_at=model.uploaded_at,
        )


# =========================================================================
# Monthly returns
# =========================================================================


@dataclass(frozen=True)
class MonthlyReturnInfo:
    """
    A monthly return with its sub-records.

    ``financial_data`` is None until attached; ``documents`` is ordered by
    upload time.
    """

    id: UUID
    sacco_id: UUID
    reporting_month: date
    status: ReturnStatus
    submitted_by_id: UUID | None
    submission_date: datetime | None
    reviewed_by_id: UUID | None
    review_date: datetime | None
    review_notes: str | None
    version: int
    created_at: datetime
    updated_at: datetime
    financial_data: FinancialDataInfo | None = None
    documents: tuple[DocumentInfo, ...] = ()

    @property
    def is_editable(self) -> bool:
        return self.status == ReturnStatus.DRAFT

    @classmethod
    def from_model(
        cls, model: MonthlyReturnModel, include_children: bool = True
    ) -> MonthlyReturnInfo:
        """
        Create a MonthlyReturnInfo from a MonthlyReturn ORM model.

        Args:
            model: MonthlyReturn ORM model instance.
            include_children: When False, skip financial data and documents
                (used by list views to avoid loading sub-records).
        """
        financial_data = None
        documents: tuple[DocumentInfo, ...] = ()
        if include_children:
            if model.financial_data is not None:
                financial_data = FinancialDataInfo.from_model(model.financial_data)
            documents = tuple(DocumentInfo.from_model(d) for d in model.documents)
        return cls(
            id=model.id,
            sacco_id=model.sacco_id,
            reporting_month=model.reporting_month,
            status=ReturnStatus(model.status),
            submitted_by_id=model.submitted_by_id,
            submission_date=model.submission_date,
            reviewed_by_id=model.reviewed_by_id,
            review_date=model.review_date,
            review_notes=model.review_notes,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
            financial_data=financial_data,
            documents=documents,
        )


# =========================================================================
# Users
# =========================================================================


@dataclass(frozen=True)
class UserInput:
    """Registration details for a new user account."""

    username: str
    role: Role
    credential_hash: str
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    sacco_id: UUID | None = None


@dataclass(frozen=True)
class UserInfo:
    """User account as seen by administrators.  Never exposes the credential hash."""

    id: UUID
    username: str
    email: str | None
    first_name: str
    last_name: str
    role: Role
    sacco_id: UUID | None
    is_active: bool
    last_login: datetime | None
    created_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_model(cls, model: UserModel) -> UserInfo:
        return cls(
            id=model.id,
            username=model.username,
            email=model.email,
            first_name=model.first_name,
            last_name=model.last_name,
            role=Role(model.role),
            sacco_id=model.sacco_id,
            is_active=model.is_active,
            last_login=model.last_login,
            created_at=model.created_at,
        )


# =========================================================================
# Compliance
# =========================================================================


@dataclass(frozen=True)
class LowComplianceSacco:
    sacco_id: UUID
    registration_number: str
    name: str
    county: str
    submission_count: int
