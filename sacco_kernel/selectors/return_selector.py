"""
Module: sacco_kernel.selectors.return_selector
Responsibility: Read path for monthly returns: one return with its
    financial data and documents, the return for a given period, and
    filtered lists.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Same visibility rule as the workflow: regulators see every return;
      SACCO staff see their own SACCO's; a missing return is reported as
      NotFound only to regulators.
    - Lists are ordered by reporting month, newest first.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from sacco_kernel.domain.authorization import can_view_return, can_view_sacco, is_regulator
from sacco_kernel.domain.dtos import MonthlyReturnInfo
from sacco_kernel.domain.periods import normalize_reporting_month
from sacco_kernel.domain.roles import Actor
from sacco_kernel.domain.workflow import ReturnStatus
from sacco_kernel.exceptions import ReturnNotFoundError
from sacco_kernel.models.monthly_return import MonthlyReturn
from sacco_kernel.selectors.base import BaseSelector


class ReturnSelector(BaseSelector[MonthlyReturn]):
    """Read-only queries over monthly returns."""

    def get_return(self, return_id: UUID, actor: Actor) -> MonthlyReturnInfo:
        """
        Raises:
            AuthorizationError: Actor may not view the return, or (for
                non-regulators) it does not exist.
            ReturnNotFoundError: Absent, and the actor is a regulator.
        """
        ret = self.session.execute(
            select(MonthlyReturn)
            .where(MonthlyReturn.id == return_id)
            .options(
                selectinload(MonthlyReturn.financial_data),
                selectinload(MonthlyReturn.documents),
            )
        ).scalar_one_or_none()
        if ret is None:
            if is_regulator(actor):
                raise ReturnNotFoundError(str(return_id))
            self._authorize(False, actor, "view monthly return")
        self._authorize(can_view_return(actor, ret.sacco_id), actor, "view monthly return")
        return MonthlyReturnInfo.from_model(ret)

    def get_for_period(
        self, sacco_id: UUID, reporting_month: date | datetime, actor: Actor
    ) -> MonthlyReturnInfo | None:
        """The return for a SACCO and month, or None if none was opened."""
        self._authorize(can_view_sacco(actor, sacco_id), actor, "view monthly return")
        ret = self.session.execute(
            select(MonthlyReturn).where(
                MonthlyReturn.sacco_id == sacco_id,
                MonthlyReturn.reporting_month == normalize_reporting_month(reporting_month),
            )
        ).scalar_one_or_none()
        return MonthlyReturnInfo.from_model(ret) if ret is not None else None

    def list_returns(
        self,
        actor: Actor,
        sacco_id: UUID | None = None,
        status: ReturnStatus | None = None,
    ) -> list[MonthlyReturnInfo]:
        """
        Returns visible to the actor, newest month first, without
        sub-records.  Filtering on a SACCO the actor cannot see raises
        AuthorizationError; an actor with no scope gets an empty list.
        """
        stmt = select(MonthlyReturn)
        if sacco_id is not None:
            self._authorize(can_view_sacco(actor, sacco_id), actor, "list monthly returns")
            stmt = stmt.where(MonthlyReturn.sacco_id == sacco_id)
        elif not is_regulator(actor):
            if not actor.active or actor.affiliated_sacco_id is None:
                return []
            stmt = stmt.where(MonthlyReturn.sacco_id == actor.affiliated_sacco_id)
        if status is not None:
            stmt = stmt.where(MonthlyReturn.status == ReturnStatus(status).value)

        rows = self.session.execute(
            stmt.order_by(MonthlyReturn.reporting_month.desc(), MonthlyReturn.id)
        ).scalars()
        return [MonthlyReturnInfo.from_model(r, include_children=False) for r in rows]
