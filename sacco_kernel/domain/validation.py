"""
Input validation for SACCO records, financial data, documents and users.

Pure checks with no I/O.  Each validator either returns a normalized copy
of its input or raises ``ValidationError`` naming the first violated field.
Fields are checked in a fixed order so the reported field is deterministic.
"""

from __future__ import annotations

import re
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any

from sacco_kernel.db.types import MONEY_MAX, RATIO_MAX, round_money
from sacco_kernel.domain.dtos import (
    COUNT_FIELDS,
    MONEY_FIELDS,
    RATIO_FIELDS,
    DocumentInput,
    DocumentType,
    FinancialDataInput,
    SaccoInput,
    SaccoType,
    UserInput,
)
from sacco_kernel.domain.roles import Role, requires_affiliation
from sacco_kernel.exceptions import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_SACCO_REQUIRED = (
    "registration_number",
    "name",
    "county",
    "contact_person",
    "phone",
)


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_email(value: str | None, field: str = "email") -> str | None:
    """Optional email: blank becomes None, anything else must look like an address."""
    value = _clean(value)
    if value is not None and not _EMAIL_RE.match(value):
        raise ValidationError(field, "is not a valid email address")
    return value


def validate_sacco(data: SaccoInput, today: date) -> SaccoInput:
    """
    Validate SACCO registration details.

    Required text fields are checked first (registration number, name,
    county, contact person, phone), then the registration date, which may
    not lie in the future.
    """
    for field in _SACCO_REQUIRED:
        if _blank(getattr(data, field)):
            raise ValidationError(field, "is required")
    if data.registration_date is None:
        raise ValidationError("registration_date", "is required")
    if data.registration_date > today:
        raise ValidationError("registration_date", "cannot be in the future")

    sacco_type = data.sacco_type
    if sacco_type is not None and not isinstance(sacco_type, SaccoType):
        try:
            sacco_type = SaccoType(sacco_type)
        except ValueError:
            raise ValidationError("sacco_type", f"unknown type '{sacco_type}'") from None

    return replace(
        data,
        registration_number=data.registration_number.strip(),
        name=data.name.strip(),
        county=data.county.strip(),
        contact_person=data.contact_person.strip(),
        phone=data.phone.strip(),
        sub_county=_clean(data.sub_county),
        sacco_type=sacco_type,
        email=validate_email(data.email),
        address=_clean(data.address),
    )


def _require_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, float):
        raise ValidationError(field, "must be Decimal, not float")
    if isinstance(value, bool) or not isinstance(value, (Decimal, int)):
        raise ValidationError(field, f"must be Decimal, not {type(value).__name__}")
    value = Decimal(value)
    if not value.is_finite():
        raise ValidationError(field, "must be a finite number")
    return value


def validate_financial_data(data: FinancialDataInput) -> dict[str, Decimal | int]:
    """
    Validate and normalize financial data for storage.

    Returns a mapping of field name to value: money and ratios quantized to
    2 decimal places (ROUND_HALF_UP), counts as ints.  PAR ratios are not
    required to be ordered against one another.
    """
    values: dict[str, Decimal | int] = {}

    for field in MONEY_FIELDS:
        amount = round_money(_require_decimal(getattr(data, field), field))
        if amount < 0:
            raise ValidationError(field, "cannot be negative")
        if amount > MONEY_MAX:
            raise ValidationError(field, "exceeds the storable maximum")
        values[field] = amount

    for field in COUNT_FIELDS:
        count = getattr(data, field)
        if isinstance(count, bool) or not isinstance(count, int):
            raise ValidationError(field, f"must be an integer, not {type(count).__name__}")
        if count < 0:
            raise ValidationError(field, "cannot be negative")
        values[field] = count

    for field in RATIO_FIELDS:
        ratio = round_money(_require_decimal(getattr(data, field), field))
        if ratio < 0 or ratio > RATIO_MAX:
            raise ValidationError(field, "must be a percentage between 0 and 100")
        values[field] = ratio

    return values


def validate_document(
    doc: DocumentInput, max_size_bytes: int | None = None
) -> DocumentInput:
    """Validate uploaded document metadata; the optional size cap comes from config."""
    document_type = doc.document_type
    if not isinstance(document_type, DocumentType):
        try:
            document_type = DocumentType(document_type)
        except ValueError:
            raise ValidationError(
                "document_type", f"unknown type '{document_type}'"
            ) from None
    if _blank(doc.file_name):
        raise ValidationError("file_name", "is required")
    if _blank(doc.storage_path):
        raise ValidationError("storage_path", "is required")
    if isinstance(doc.size_bytes, bool) or not isinstance(doc.size_bytes, int):
        raise ValidationError("size_bytes", "must be an integer")
    if doc.size_bytes < 0:
        raise ValidationError("size_bytes", "cannot be negative")
    if max_size_bytes is not None and doc.size_bytes > max_size_bytes:
        raise ValidationError(
            "size_bytes", f"exceeds the maximum of {max_size_bytes} bytes"
        )
    return replace(
        doc,
        document_type=document_type,
        file_name=doc.file_name.strip(),
        storage_path=doc.storage_path.strip(),
    )


def validate_role_affiliation(role: Role | str, sacco_id: Any) -> Role:
    """SACCO roles need a SACCO; ministry roles must not have one."""
    try:
        role = Role(role)
    except ValueError:
        raise ValidationError("role", f"unknown role '{role}'") from None
    if requires_affiliation(role) and sacco_id is None:
        raise ValidationError("sacco_id", f"is required for role {role.value}")
    if not requires_affiliation(role) and sacco_id is not None:
        raise ValidationError("sacco_id", f"must be empty for role {role.value}")
    return role


def validate_user(data: UserInput) -> UserInput:
    """Validate a new user registration."""
    if _blank(data.username):
        raise ValidationError("username", "is required")
    if _blank(data.credential_hash):
        raise ValidationError("credential_hash", "is required")
    role = validate_role_affiliation(data.role, data.sacco_id)
    return replace(
        data,
        username=data.username.strip(),
        role=role,
        first_name=(data.first_name or "").strip(),
        last_name=(data.last_name or "").strip(),
        email=validate_email(data.email),
    )
