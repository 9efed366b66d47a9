"""
Module: sacco_kernel.selectors.compliance_selector
Responsibility: Read-only compliance aggregates consumed by dashboards:
    per-SACCO compliance rate, the low-compliance watch list, and the
    pending-review count.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A month counts toward compliance when the SACCO has a non-Draft return
      for it.  Months are distinct by construction (one return per month).
    - The trailing window is the month of ``as_of`` plus the preceding
      ``window_months - 1`` months; later months never count.
    - The rate is divided by a fixed denominator of 3 months, rounded to
      2 decimal places (ROUND_HALF_UP) and capped at 100.
    - Cross-SACCO aggregates are regulator-only.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from sacco_kernel.db.types import round_money
from sacco_kernel.domain.authorization import can_view_sacco, is_regulator
from sacco_kernel.domain.clock import Clock
from sacco_kernel.domain.dtos import LowComplianceSacco, SaccoStatus
from sacco_kernel.domain.periods import trailing_months
from sacco_kernel.domain.roles import Actor
from sacco_kernel.domain.workflow import PENDING_REVIEW_STATUSES, SUBMITTED_STATUSES
from sacco_kernel.exceptions import SaccoNotFoundError, ValidationError
from sacco_kernel.logging_config import get_logger
from sacco_kernel.models.monthly_return import MonthlyReturn
from sacco_kernel.models.sacco import Sacco
from sacco_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.compliance")

COMPLIANCE_DENOMINATOR = Decimal(3)
MAX_RATE = Decimal("100.00")

DEFAULT_WINDOW_MONTHS = 3
DEFAULT_LOW_COMPLIANCE_THRESHOLD = 2

_SUBMITTED = tuple(s.value for s in SUBMITTED_STATUSES)
_PENDING = tuple(s.value for s in PENDING_REVIEW_STATUSES)


def rate_from_count(months_with_returns: int) -> Decimal:
    """Percentage over the fixed 3-month denominator, 2 dp, capped at 100."""
    rate = round_money(Decimal(months_with_returns) / COMPLIANCE_DENOMINATOR * 100)
    return min(rate, MAX_RATE)


class ComplianceSelector(BaseSelector[MonthlyReturn]):
    """
    Compliance statistics over committed returns.

    Window length and low-compliance threshold default to 3 months and
    2 returns; callers usually pass the configured values.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        window_months: int = DEFAULT_WINDOW_MONTHS,
        low_compliance_threshold: int = DEFAULT_LOW_COMPLIANCE_THRESHOLD,
    ):
        super().__init__(session, clock)
        self._window_months = window_months
        self._threshold = low_compliance_threshold

    def _window(self, as_of: date | datetime | None, window_months: int) -> tuple[date, date]:
        if window_months < 1:
            raise ValidationError("window_months", "must be at least 1")
        months = trailing_months(as_of or self._clock.today(), window_months)
        return months[-1], months[0]

    def compliance_rate(
        self,
        sacco_id: UUID,
        actor: Actor,
        window_months: int | None = None,
        as_of: date | datetime | None = None,
    ) -> Decimal:
        """
        Percentage of the trailing window covered by non-Draft returns.

        Raises:
            AuthorizationError: Actor may not view this SACCO.
            SaccoNotFoundError: SACCO id is absent.
            ValidationError: window_months < 1.
        """
        self._authorize(can_view_sacco(actor, sacco_id), actor, "view compliance rate")
        if window_months is None:
            window_months = self._window_months
        start, end = self._window(as_of, window_months)
        if self.session.get(Sacco, sacco_id) is None:
            raise SaccoNotFoundError(str(sacco_id))

        months = self.session.execute(
            select(func.count(func.distinct(MonthlyReturn.reporting_month))).where(
                MonthlyReturn.sacco_id == sacco_id,
                MonthlyReturn.status.in_(_SUBMITTED),
                MonthlyReturn.reporting_month >= start,
                MonthlyReturn.reporting_month <= end,
            )
        ).scalar_one()
        rate = rate_from_count(months)

        logger.debug(
            "compliance_rate_computed",
            extra={"sacco_id": str(sacco_id), "months": months, "rate": rate},
        )
        return rate

    def low_compliance_saccos(
        self, actor: Actor, as_of: date | datetime | None = None
    ) -> list[LowComplianceSacco]:
        """
        Active SACCOs with fewer than the threshold of non-Draft returns in
        the trailing window, ordered by name.  Regulators only.
        """
        self._authorize(is_regulator(actor), actor, "view low-compliance SACCOs")
        start, end = self._window(as_of, self._window_months)

        counts = (
            select(
                MonthlyReturn.sacco_id.label("sacco_id"),
                func.count(MonthlyReturn.id).label("submissions"),
            )
            .where(
                MonthlyReturn.status.in_(_SUBMITTED),
                MonthlyReturn.reporting_month >= start,
                MonthlyReturn.reporting_month <= end,
            )
            .group_by(MonthlyReturn.sacco_id)
            .subquery()
        )
        submissions = func.coalesce(counts.c.submissions, 0)
        rows = self.session.execute(
            select(Sacco, submissions)
            .outerjoin(counts, counts.c.sacco_id == Sacco.id)
            .where(Sacco.status == SaccoStatus.ACTIVE.value)
            .where(submissions < self._threshold)
            .order_by(Sacco.name, Sacco.id)
        ).all()

        return [
            LowComplianceSacco(
                sacco_id=sacco.id,
                registration_number=sacco.registration_number,
                name=sacco.name,
                county=sacco.county,
                submission_count=int(count),
            )
            for sacco, count in rows
        ]

    def pending_review_count(self, actor: Actor) -> int:
        """
        Returns awaiting review (Submitted or Under_Review).  Regulators see
        the system-wide count, SACCO staff their own SACCO's, anyone else 0.
        """
        stmt = select(func.count(MonthlyReturn.id)).where(
            MonthlyReturn.status.in_(_PENDING)
        )
        if not is_regulator(actor):
            scoped = (
                actor.active
                and actor.is_sacco_scoped
                and actor.affiliated_sacco_id is not None
            )
            if not scoped:
                return 0
            stmt = stmt.where(MonthlyReturn.sacco_id == actor.affiliated_sacco_id)
        return int(self.session.execute(stmt).scalar_one())
