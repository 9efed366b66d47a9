"""
Monthly return workflow tests.

Covers the full Draft -> Submitted -> Under_Review -> decision path, every
illegal transition, the one-return-per-period rule, cross-SACCO isolation,
and the exact round-trip of monetary figures.
"""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import text

from sacco_kernel.domain.dtos import DocumentInput, DocumentType, FinancialDataInput
from sacco_kernel.domain.roles import Role
from sacco_kernel.domain.workflow import ReturnStatus, ReviewDecision
from sacco_kernel.exceptions import (
    AuthorizationError,
    ConflictError,
    DuplicateReturnError,
    IncompleteReturnError,
    InvalidDecisionError,
    InvalidReturnTransitionError,
    ReturnNotFoundError,
    SaccoNotFoundError,
    StaleReturnError,
    StateError,
    ValidationError,
)
from sacco_kernel.models.monthly_return import MonthlyReturn

S = ReturnStatus


class TestEndToEndScenario:
    """Alpha files March 2024 and the ministry approves it."""

    def test_file_review_approve(
        self, registry, workflow, admin, sacco_input, make_actor, financial_input, clock
    ):
        alpha = registry.create(sacco_input(name="Alpha", registration_number="REG-001"), admin)
        clerk = make_actor(Role.DATA_ENTRY_OFFICER, alpha.id)
        analyst = make_actor(Role.ANALYST)
        supervisor = make_actor(Role.SUPERVISOR)

        draft = workflow.create_draft(alpha.id, date(2024, 3, 1), clerk)
        assert draft.status == S.DRAFT
        workflow.attach_financial_data(draft.id, financial_input, clerk)

        submitted = workflow.submit(draft.id, clerk)
        assert submitted.status == S.SUBMITTED
        assert submitted.submitted_by_id == clerk.id
        assert submitted.submission_date == clock.now_utc()

        assert workflow.begin_review(draft.id, analyst).status == S.UNDER_REVIEW

        decided = workflow.decide(draft.id, ReviewDecision.APPROVED, "ok", supervisor)
        assert decided.status == S.APPROVED
        assert decided.reviewed_by_id == supervisor.id
        assert decided.review_notes == "ok"
        assert decided.review_date == clock.now_utc()

        with pytest.raises(ConflictError):
            workflow.create_draft(alpha.id, date(2024, 3, 1), clerk)
        manager = make_actor(Role.SACCO_MANAGER, alpha.id)
        with pytest.raises(DuplicateReturnError):
            workflow.create_draft(alpha.id, date(2024, 3, 20), manager)


class TestCreateDraft:

    def test_month_is_normalized(self, workflow, sacco, officer):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 27), officer)
        assert ret.reporting_month == date(2024, 3, 1)

    def test_datetime_month(self, workflow, sacco, officer):
        ret = workflow.create_draft(sacco.id, datetime(2024, 2, 29, 23, 0, tzinfo=UTC), officer)
        assert ret.reporting_month == date(2024, 2, 1)

    def test_new_draft_has_no_sub_records(self, workflow, sacco, officer):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        assert ret.financial_data is None
        assert ret.documents == ()
        assert ret.is_editable
        assert ret.version == 1

    @pytest.mark.parametrize("status", [S.DRAFT, S.SUBMITTED, S.REJECTED, S.APPROVED])
    def test_duplicate_period_regardless_of_status(self, workflow, sacco, officer, return_in_state, status):
        return_in_state(status)
        with pytest.raises(DuplicateReturnError) as exc_info:
            workflow.create_draft(sacco.id, date(2024, 3, 9), officer)
        assert exc_info.value.reporting_month == "2024-03-01"

    def test_other_month_is_free(self, workflow, sacco, officer, return_in_state):
        return_in_state(S.APPROVED)
        assert workflow.create_draft(sacco.id, date(2024, 4, 1), officer).status == S.DRAFT

    def test_same_month_other_sacco_is_free(self, workflow, sacco, create_sacco, make_actor, return_in_state):
        return_in_state(S.DRAFT)
        beta = create_sacco(name="Beta")
        staff = make_actor(Role.SACCO_MANAGER, beta.id)
        assert workflow.create_draft(beta.id, date(2024, 3, 1), staff).sacco_id == beta.id

    @pytest.mark.parametrize("role", [Role.ANALYST, Role.SUPERVISOR, Role.SYSTEM_ADMIN])
    def test_regulators_cannot_create(self, workflow, sacco, make_actor, role):
        with pytest.raises(AuthorizationError):
            workflow.create_draft(sacco.id, date(2024, 3, 1), make_actor(role))

    def test_staff_of_other_sacco_cannot_create(self, workflow, sacco, make_actor):
        with pytest.raises(AuthorizationError):
            workflow.create_draft(sacco.id, date(2024, 3, 1), make_actor(Role.SACCO_MANAGER, uuid4()))

    def test_inactive_staff_cannot_create(self, workflow, sacco, make_actor):
        staff = make_actor(Role.ACCOUNTS_OFFICER, sacco.id, active=False)
        with pytest.raises(AuthorizationError):
            workflow.create_draft(sacco.id, date(2024, 3, 1), staff)

    def test_missing_sacco(self, workflow, make_actor):
        ghost = uuid4()
        with pytest.raises(SaccoNotFoundError):
            workflow.create_draft(ghost, date(2024, 3, 1), make_actor(Role.SACCO_MANAGER, ghost))

    def test_inactive_sacco_may_still_file(self, workflow, registry, admin, sacco, officer):
        registry.toggle_status(sacco.id, admin)
        assert workflow.create_draft(sacco.id, date(2024, 3, 1), officer).status == S.DRAFT


class TestFinancialData:

    def test_round_trip_is_exact(self, workflow, returns, session, sacco, officer, financial_input):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        workflow.attach_financial_data(ret.id, financial_input, officer)
        session.expire_all()

        stored = returns.get_return(ret.id, officer).financial_data
        assert stored.share_capital == Decimal("12345.67")
        assert str(stored.share_capital) == "12345.67"
        assert stored.as_input() == financial_input

    def test_amounts_are_quantized_half_up(self, workflow, returns, session, sacco, officer):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        workflow.attach_financial_data(
            ret.id,
            FinancialDataInput(total_assets=Decimal("100.125"), par30=Decimal("4.445")),
            officer,
        )
        session.expire_all()
        stored = returns.get_return(ret.id, officer).financial_data
        assert stored.total_assets == Decimal("100.13")
        assert stored.par30 == Decimal("4.45")

    def test_attach_replaces_existing_record(self, workflow, sacco, officer, financial_input):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        first = workflow.attach_financial_data(ret.id, financial_input, officer)
        second = workflow.attach_financial_data(
            ret.id, FinancialDataInput(share_capital=Decimal("1.00")), officer
        )
        assert second.financial_data.id == first.financial_data.id
        assert second.financial_data.share_capital == Decimal("1.00")
        assert second.financial_data.total_members == 0

    def test_float_rejected(self, workflow, sacco, officer):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        with pytest.raises(ValidationError) as exc_info:
            workflow.attach_financial_data(ret.id, FinancialDataInput(share_capital=12345.67), officer)
        assert exc_info.value.field == "share_capital"

    def test_negative_count_rejected(self, workflow, sacco, officer):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        with pytest.raises(ValidationError):
            workflow.attach_financial_data(ret.id, FinancialDataInput(new_members=-3), officer)

    @pytest.mark.parametrize("status", [S.SUBMITTED, S.UNDER_REVIEW, S.APPROVED, S.FLAGGED])
    def test_only_draft_is_editable(self, workflow, officer, financial_input, return_in_state, status):
        ret = return_in_state(status)
        with pytest.raises(InvalidReturnTransitionError) as exc_info:
            workflow.attach_financial_data(ret.id, financial_input, officer)
        assert exc_info.value.current_status == status.value
        assert exc_info.value.operation == "attach financial data"

    def test_regulator_cannot_attach(self, workflow, analyst, financial_input, return_in_state):
        ret = return_in_state(S.DRAFT)
        with pytest.raises(AuthorizationError):
            workflow.attach_financial_data(ret.id, financial_input, analyst)


class TestSubmit:

    def test_without_financial_data(self, workflow, sacco, officer):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        with pytest.raises(IncompleteReturnError) as exc_info:
            workflow.submit(ret.id, officer)
        assert isinstance(exc_info.value, StateError)

    def test_any_affiliated_staff_may_submit(self, workflow, sacco, officer, make_actor, financial_input):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        workflow.attach_financial_data(ret.id, financial_input, officer)
        manager = make_actor(Role.SACCO_MANAGER, sacco.id)
        assert workflow.submit(ret.id, manager).submitted_by_id == manager.id

    def test_regulator_cannot_submit(self, workflow, supervisor, return_in_state):
        ret = return_in_state(S.DRAFT)
        with pytest.raises(AuthorizationError):
            workflow.submit(ret.id, supervisor)


class TestIllegalTransitions:
    """Every operation names the current status and itself when refused."""

    @pytest.mark.parametrize(
        "status", [S.SUBMITTED, S.UNDER_REVIEW, S.APPROVED, S.REJECTED, S.FLAGGED]
    )
    def test_submit_requires_draft(self, workflow, officer, return_in_state, status):
        ret = return_in_state(status)
        with pytest.raises(InvalidReturnTransitionError) as exc_info:
            workflow.submit(ret.id, officer)
        assert exc_info.value.current_status == status.value
        assert exc_info.value.operation == "submit"

    @pytest.mark.parametrize(
        "status", [S.DRAFT, S.UNDER_REVIEW, S.APPROVED, S.REJECTED, S.FLAGGED]
    )
    def test_begin_review_requires_submitted(self, workflow, analyst, return_in_state, status):
        ret = return_in_state(status)
        with pytest.raises(InvalidReturnTransitionError) as exc_info:
            workflow.begin_review(ret.id, analyst)
        assert exc_info.value.current_status == status.value

    @pytest.mark.parametrize(
        "status", [S.DRAFT, S.SUBMITTED, S.APPROVED, S.REJECTED, S.FLAGGED]
    )
    @pytest.mark.parametrize("decision", list(ReviewDecision))
    def test_decide_requires_under_review(self, workflow, analyst, return_in_state, status, decision):
        ret = return_in_state(status)
        with pytest.raises(InvalidReturnTransitionError) as exc_info:
            workflow.decide(ret.id, decision, None, analyst)
        assert exc_info.value.operation == "decide"

    @pytest.mark.parametrize("status", [S.DRAFT, S.SUBMITTED, S.UNDER_REVIEW, S.APPROVED])
    def test_reopen_requires_rejected_or_flagged(self, workflow, officer, return_in_state, status):
        ret = return_in_state(status)
        with pytest.raises(InvalidReturnTransitionError):
            workflow.reopen_for_resubmission(ret.id, officer)

    def test_failed_transition_leaves_status(self, workflow, returns, officer, return_in_state):
        ret = return_in_state(S.APPROVED)
        with pytest.raises(StateError):
            workflow.submit(ret.id, officer)
        assert returns.get_return(ret.id, officer).status == S.APPROVED


class TestReview:

    def test_sacco_manager_cannot_begin_review(self, workflow, make_actor, sacco, return_in_state):
        ret = return_in_state(S.SUBMITTED)
        manager = make_actor(Role.SACCO_MANAGER, sacco.id)
        with pytest.raises(AuthorizationError):
            workflow.begin_review(ret.id, manager)

    def test_sacco_manager_refused_even_for_missing_return(self, workflow, make_actor, sacco):
        with pytest.raises(AuthorizationError):
            workflow.begin_review(uuid4(), make_actor(Role.SACCO_MANAGER, sacco.id))

    def test_regulator_gets_not_found(self, workflow, analyst):
        with pytest.raises(ReturnNotFoundError):
            workflow.begin_review(uuid4(), analyst)

    @pytest.mark.parametrize(
        "decision, status",
        [
            ("Approved", S.APPROVED),
            ("Rejected", S.REJECTED),
            ("Flagged", S.FLAGGED),
        ],
    )
    def test_string_decisions(self, workflow, supervisor, return_in_state, decision, status):
        ret = return_in_state(S.UNDER_REVIEW)
        assert workflow.decide(ret.id, decision, "  needs work  ", supervisor).status == status

    def test_notes_are_trimmed_and_blank_is_none(self, workflow, supervisor, return_in_state):
        ret = return_in_state(S.UNDER_REVIEW)
        assert workflow.decide(ret.id, "Flagged", "   ", supervisor).review_notes is None

    def test_invalid_decision(self, workflow, supervisor, return_in_state):
        ret = return_in_state(S.UNDER_REVIEW)
        with pytest.raises(InvalidDecisionError):
            workflow.decide(ret.id, "Under_Review", None, supervisor)

    def test_staff_cannot_decide(self, workflow, officer, return_in_state):
        ret = return_in_state(S.UNDER_REVIEW)
        with pytest.raises(AuthorizationError):
            workflow.decide(ret.id, "Approved", None, officer)

    def test_authorization_checked_before_decision_value(self, workflow, officer, return_in_state):
        ret = return_in_state(S.UNDER_REVIEW)
        with pytest.raises(AuthorizationError):
            workflow.decide(ret.id, "bogus", None, officer)


class TestReopen:

    @pytest.mark.parametrize("status", [S.REJECTED, S.FLAGGED])
    def test_reopen_returns_to_draft_and_clears_review(self, workflow, officer, return_in_state, status):
        ret = return_in_state(status)
        reopened = workflow.reopen_for_resubmission(ret.id, officer)

        assert reopened.status == S.DRAFT
        assert reopened.reviewed_by_id is None
        assert reopened.review_date is None
        assert reopened.review_notes is None
        assert reopened.financial_data is not None

    def test_resubmission_cycle(self, workflow, officer, analyst, return_in_state):
        ret = return_in_state(S.REJECTED)
        workflow.reopen_for_resubmission(ret.id, officer)
        workflow.attach_financial_data(
            ret.id, FinancialDataInput(share_capital=Decimal("20000.00")), officer
        )
        workflow.submit(ret.id, officer)
        workflow.begin_review(ret.id, analyst)
        final = workflow.decide(ret.id, ReviewDecision.APPROVED, None, analyst)
        assert final.status == S.APPROVED
        assert final.financial_data.share_capital == Decimal("20000.00")

    def test_regulator_cannot_reopen(self, workflow, analyst, return_in_state):
        ret = return_in_state(S.FLAGGED)
        with pytest.raises(AuthorizationError):
            workflow.reopen_for_resubmission(ret.id, analyst)


class TestCrossSaccoIsolation:
    """Staff of SACCO B can neither read nor change SACCO A's return."""

    @pytest.fixture
    def outsider(self, create_sacco, make_actor):
        beta = create_sacco(name="Beta")
        return make_actor(Role.SACCO_MANAGER, beta.id)

    def test_cannot_attach(self, workflow, outsider, financial_input, return_in_state):
        ret = return_in_state(S.DRAFT)
        with pytest.raises(AuthorizationError):
            workflow.attach_financial_data(ret.id, financial_input, outsider)

    def test_cannot_submit(self, workflow, outsider, return_in_state):
        ret = return_in_state(S.DRAFT)
        with pytest.raises(AuthorizationError):
            workflow.submit(ret.id, outsider)

    def test_cannot_reopen(self, workflow, outsider, return_in_state):
        ret = return_in_state(S.REJECTED)
        with pytest.raises(AuthorizationError):
            workflow.reopen_for_resubmission(ret.id, outsider)

    def test_cannot_read(self, returns, outsider, return_in_state):
        ret = return_in_state(S.SUBMITTED)
        with pytest.raises(AuthorizationError):
            returns.get_return(ret.id, outsider)

    def test_missing_and_foreign_look_the_same(self, workflow, outsider, return_in_state):
        ret = return_in_state(S.DRAFT)
        with pytest.raises(AuthorizationError) as foreign:
            workflow.submit(ret.id, outsider)
        with pytest.raises(AuthorizationError) as missing:
            workflow.submit(uuid4(), outsider)
        assert foreign.value.operation == missing.value.operation


class TestVersioning:

    def test_each_write_bumps_version(self, workflow, officer, analyst, sacco, financial_input):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        versions = [ret.version]
        versions.append(workflow.attach_financial_data(ret.id, financial_input, officer).version)
        versions.append(workflow.submit(ret.id, officer).version)
        versions.append(workflow.begin_review(ret.id, analyst).version)
        assert versions == sorted(set(versions))

    def test_sub_record_writes_bump_version(self, workflow, officer, sacco, financial_input):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        first = workflow.attach_financial_data(ret.id, financial_input, officer)
        # Same actor, same clock tick: the parent row still gets an UPDATE
        second = workflow.attach_financial_data(ret.id, financial_input, officer)
        assert (ret.version, first.version, second.version) == (1, 2, 3)

    def test_document_writes_bump_version(self, session, workflow, officer, sacco):
        ret = workflow.create_draft(sacco.id, date(2024, 3, 1), officer)
        doc = workflow.attach_document(
            ret.id,
            DocumentInput(DocumentType.BOARD_RESOLUTION, "minutes.pdf", "returns/minutes.pdf", 2048),
            officer,
        )
        workflow.remove_document(doc.id, officer)
        assert session.get(MonthlyReturn, ret.id).version == 3

    def test_write_over_changed_row_is_stale_return(self, session, workflow, analyst,
                                                    return_in_state, monkeypatch):
        ret = return_in_state(S.SUBMITTED)
        loaded = session.get(MonthlyReturn, ret.id)
        session.execute(
            text("UPDATE monthly_returns SET version = version + 1 WHERE id = :id"),
            {"id": str(ret.id)},
        )
        # Skip the locked re-read so the write is based on the old version
        monkeypatch.setattr(workflow, "_load_visible", lambda *args, **kwargs: loaded)

        with pytest.raises(StaleReturnError) as exc_info:
            workflow.begin_review(ret.id, analyst)
        assert exc_info.value.return_id == str(ret.id)
        assert exc_info.value.operation == "begin review"
        assert exc_info.value.code == "STALE_RETURN"
