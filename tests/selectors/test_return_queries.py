"""Return read path: single return, period lookup and filtered lists."""

from datetime import date, datetime
from uuid import uuid4

import pytest

from sacco_kernel.domain.roles import Role
from sacco_kernel.domain.workflow import ReturnStatus
from sacco_kernel.exceptions import AuthorizationError, ReturnNotFoundError

S = ReturnStatus


class TestGetReturn:

    def test_includes_children(self, returns, officer, return_in_state):
        ret = return_in_state(S.SUBMITTED)
        info = returns.get_return(ret.id, officer)
        assert info.status == S.SUBMITTED
        assert info.financial_data.par30 == ret.financial_data.par30

    def test_regulator_reads_any(self, returns, supervisor, return_in_state):
        ret = return_in_state(S.DRAFT)
        assert returns.get_return(ret.id, supervisor).id == ret.id

    def test_missing_for_regulator(self, returns, supervisor):
        with pytest.raises(ReturnNotFoundError):
            returns.get_return(uuid4(), supervisor)

    def test_missing_for_staff(self, returns, officer):
        with pytest.raises(AuthorizationError):
            returns.get_return(uuid4(), officer)


class TestGetForPeriod:

    def test_found_by_any_day_of_month(self, returns, officer, sacco, return_in_state):
        ret = return_in_state(S.DRAFT)
        assert returns.get_for_period(sacco.id, datetime(2024, 3, 31, 18, 0), officer).id == ret.id

    def test_none_when_not_opened(self, returns, officer, sacco):
        assert returns.get_for_period(sacco.id, date(2024, 3, 1), officer) is None

    def test_other_sacco_refused(self, returns, make_actor, sacco):
        with pytest.raises(AuthorizationError):
            returns.get_for_period(sacco.id, date(2024, 3, 1), make_actor(Role.SACCO_MANAGER, uuid4()))


class TestListReturns:

    @pytest.fixture
    def other_sacco(self, create_sacco, make_actor, return_in_state):
        other = create_sacco(name="Other")
        staff = make_actor(Role.ACCOUNTS_OFFICER, other.id)
        return_in_state(S.SUBMITTED, month=date(2024, 2, 1), sacco_id=other.id, staff=staff)
        return other

    @pytest.fixture
    def filed(self, return_in_state):
        return [
            return_in_state(S.APPROVED, month=date(2024, 1, 1)),
            return_in_state(S.SUBMITTED, month=date(2024, 3, 1)),
            return_in_state(S.DRAFT, month=date(2024, 2, 1)),
        ]

    def test_staff_see_own_newest_first(self, returns, officer, filed, other_sacco):
        months = [r.reporting_month for r in returns.list_returns(officer)]
        assert months == [date(2024, 3, 1), date(2024, 2, 1), date(2024, 1, 1)]

    def test_list_omits_children(self, returns, officer, filed):
        assert all(r.financial_data is None for r in returns.list_returns(officer))

    def test_regulator_sees_all(self, returns, analyst, filed, other_sacco):
        assert len(returns.list_returns(analyst)) == 4

    def test_filter_by_sacco(self, returns, analyst, filed, other_sacco):
        rows = returns.list_returns(analyst, sacco_id=other_sacco.id)
        assert [r.sacco_id for r in rows] == [other_sacco.id]

    @pytest.mark.parametrize("status, count", [(S.SUBMITTED, 2), ("Approved", 1), (S.FLAGGED, 0)])
    def test_filter_by_status(self, returns, analyst, filed, other_sacco, status, count):
        assert len(returns.list_returns(analyst, status=status)) == count

    def test_staff_filtering_other_sacco_refused(self, returns, officer, other_sacco):
        with pytest.raises(AuthorizationError):
            returns.list_returns(officer, sacco_id=other_sacco.id)

    def test_unaffiliated_actor_gets_nothing(self, returns, make_actor, filed):
        assert returns.list_returns(make_actor(Role.DATA_ENTRY_OFFICER)) == []
