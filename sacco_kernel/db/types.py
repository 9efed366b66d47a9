"""
Module: sacco_kernel.db.types
Responsibility: Column types and helpers for fixed-point money, percentage
    ratios and UTC timestamps.  Centralizes precision and rounding so every
    model and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  FixedDecimal refuses float binds and always
      hands back Decimal quantized to the column scale.
    - Monetary amounts carry exactly 2 fractional digits; PAR ratios carry
      2 fractional digits as well.
    - Timestamps are always returned timezone-aware in UTC, whatever the
      backend stores.

Failure modes:
    - TypeError (wrapped by SQLAlchemy in StatementError) when a float
      reaches a FixedDecimal bind.  Services validate earlier and raise
      ValidationError instead.
"""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# Rounding constants
MONEY_DECIMAL_PLACES = 2
RATIO_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

# Largest magnitude representable by Numeric(18, 2)
MONEY_MAX = Decimal("9999999999999999.99")
RATIO_MAX = Decimal("100.00")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only sanctioned rounding function for money and ratios.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


class FixedDecimal(TypeDecorator):
    """
    Fixed-point decimal column.

    Contract:
        Binds and returns ``Decimal`` quantized to ``scale`` digits.  On
        PostgreSQL the column is ``NUMERIC(precision, scale)``.  SQLite has
        no exact decimal storage, so the canonical string form is stored
        there instead; values still round-trip exactly.

    Guarantees:
        - process_bind_param rejects float.
        - process_result_value always returns Decimal (or None).
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int = 18, scale: int = MONEY_DECIMAL_PLACES):
        super().__init__(precision=precision, scale=scale, asdecimal=True)
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(
            Numeric(self.precision, self.scale, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise TypeError("FixedDecimal does not accept float values")
        quantized = round_money(Decimal(value), self.scale)
        if dialect.name == "sqlite":
            return str(quantized)
        return quantized

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return round_money(Decimal(str(value)), self.scale)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp normalized to UTC.

    Naive datetimes are treated as UTC on the way in; values read back
    always carry ``tzinfo=UTC``.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        value = value.astimezone(UTC)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
