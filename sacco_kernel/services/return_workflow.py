"""
ReturnWorkflowService -- the monthly return state machine, persisted.

Responsibility:
    Creates draft returns, attaches their financial data and documents, and
    moves them through submission and review.  Every status change is looked
    up in ``MONTHLY_RETURN_WORKFLOW``; nothing else may change a status.

Architecture position:
    Kernel > Services.  Pure rules come from ``domain/workflow``,
    ``domain/authorization`` and ``domain/validation``; this module adds
    locking, persistence, audit and logging.

Invariants enforced:
    - One return per (SACCO, month).  ``create_draft`` pre-checks for a clean
      error; the unique index inside a savepoint settles concurrent creates
      and the loser gets DuplicateReturnError.
    - Authorization before state: the guard predicate is evaluated before
      the current status is consulted.
    - Existence never leaks: actors who cannot view the owning SACCO get
      AuthorizationError for present and absent returns alike; regulators
      get ReturnNotFoundError for absent ones.
    - Transitions re-read the row with SELECT ... FOR UPDATE and
      populate_existing, and the version column rejects any write based on a
      stale read (StaleReturnError).
    - Financial data and documents change only while the return is Draft.

Failure modes:
    - InvalidReturnTransitionError naming the current status and operation.
    - IncompleteReturnError when submitting without financial data.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from sacco_kernel.domain.authorization import (
    can_review_return,
    can_submit_return,
    can_view_return,
    is_regulator,
)
from sacco_kernel.domain.clock import Clock
from sacco_kernel.domain.dtos import (
    FINANCIAL_FIELDS,
    DocumentInfo,
    DocumentInput,
    DocumentType,
    FinancialDataInput,
    MonthlyReturnInfo,
)
from sacco_kernel.domain.periods import normalize_reporting_month
from sacco_kernel.domain.roles import Actor
from sacco_kernel.domain.validation import validate_document, validate_financial_data
from sacco_kernel.domain.workflow import (
    EDITABLE_STATUSES,
    ReturnAction,
    ReturnStatus,
    ReviewDecision,
    Transition,
    parse_decision,
    resolve_transition,
)
from sacco_kernel.exceptions import (
    DocumentNotFoundError,
    DuplicateReturnError,
    IncompleteReturnError,
    InvalidReturnTransitionError,
    ReturnNotFoundError,
    SaccoNotFoundError,
    StaleReturnError,
)
from sacco_kernel.logging_config import LogContext, get_logger
from sacco_kernel.models.audit_log import AuditAction
from sacco_kernel.models.monthly_return import Document, FinancialData, MonthlyReturn
from sacco_kernel.models.sacco import Sacco
from sacco_kernel.services.audit_service import AuditService
from sacco_kernel.services.base import BaseService

logger = get_logger("services.return_workflow")

_DECISION_AUDIT_ACTIONS: dict[ReviewDecision, AuditAction] = {
    ReviewDecision.APPROVED: AuditAction.RETURN_APPROVED,
    ReviewDecision.REJECTED: AuditAction.RETURN_REJECTED,
    ReviewDecision.FLAGGED: AuditAction.RETURN_FLAGGED,
}


def _status_snapshot(ret: MonthlyReturn) -> dict:
    return {
        "status": ret.status,
        "submitted_by_id": ret.submitted_by_id,
        "submission_date": ret.submission_date,
        "reviewed_by_id": ret.reviewed_by_id,
        "review_date": ret.review_date,
        "review_notes": ret.review_notes,
    }


def _financial_snapshot(fd: FinancialData | None) -> dict | None:
    if fd is None:
        return None
    return {name: getattr(fd, name) for name in FINANCIAL_FIELDS}


class ReturnWorkflowService(BaseService[MonthlyReturn]):
    """
    Service for the monthly return lifecycle.

    All public methods return MonthlyReturnInfo or DocumentInfo DTOs.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditService | None = None,
        max_document_bytes: int | None = None,
    ):
        """
        Args:
            session: SQLAlchemy session; the caller owns the transaction.
            clock: Time source for submission, review and upload stamps.
            auditor: Audit trail writer sharing the same session.
            max_document_bytes: Upload size cap, usually from configuration.
        """
        super().__init__(session, clock)
        self._auditor = auditor or AuditService(session, self._clock)
        self._max_document_bytes = max_document_bytes

    # ------------------------------------------------------------------
    # Loading and guards
    # ------------------------------------------------------------------

    def _find_existing(self, sacco_id: UUID, month: date) -> MonthlyReturn | None:
        return self.session.execute(
            select(MonthlyReturn).where(
                MonthlyReturn.sacco_id == sacco_id,
                MonthlyReturn.reporting_month == month,
            )
        ).scalar_one_or_none()

    def _load_visible(
        self, return_id: UUID, actor: Actor, operation: str
    ) -> MonthlyReturn:
        """
        Re-read the return under a row lock, refreshing any cached state.

        Raises ReturnNotFoundError only to regulators; everyone else who
        cannot see the owning SACCO gets AuthorizationError.
        """
        ret = self.session.execute(
            select(MonthlyReturn)
            .where(MonthlyReturn.id == return_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if ret is None:
            if is_regulator(actor):
                raise ReturnNotFoundError(str(return_id))
            self._authorize(False, actor, operation)
        self._authorize(can_view_return(actor, ret.sacco_id), actor, operation)
        return ret

    def _require_transition(
        self, ret: MonthlyReturn, action: ReturnAction, operation: str
    ) -> Transition:
        transition = resolve_transition(ret.status, action)
        if transition is None:
            self._reject_state(ret, operation)
        return transition

    def _require_editable(self, ret: MonthlyReturn, operation: str) -> None:
        if ReturnStatus(ret.status) not in EDITABLE_STATUSES:
            self._reject_state(ret, operation)

    def _reject_state(self, ret: MonthlyReturn, operation: str) -> None:
        current = ReturnStatus(ret.status)
        logger.warning(
            "return_transition_rejected",
            extra={
                "return_id": str(ret.id),
                "current_status": current.value,
                "operation": operation,
            },
        )
        raise InvalidReturnTransitionError(str(ret.id), current.value, operation)

    def _flush(self, ret: MonthlyReturn, operation: str) -> None:
        """Flush; a version mismatch means another writer got there first."""
        # A failed flush expires `ret`; read the id while it is loaded
        return_id = str(ret.id)
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "return_stale_write",
                extra={"return_id": return_id, "operation": operation},
            )
            raise StaleReturnError(return_id, operation) from exc

    def _touch(self, ret: MonthlyReturn, actor: Actor, now: datetime) -> None:
        """Stamp the parent row; always UPDATEs it so the version moves."""
        ret.updated_at = now
        ret.updated_by_id = actor.id
        flag_modified(ret, "updated_at")

    def _apply(
        self, ret: MonthlyReturn, transition: Transition, actor: Actor, now: datetime
    ) -> None:
        ret.status = transition.to_state
        if transition.clears_review:
            ret.reviewed_by_id = None
            ret.review_date = None
            ret.review_notes = None
        self._touch(ret, actor, now)

    def _log_transition(
        self, event: str, ret: MonthlyReturn, actor: Actor, from_status: ReturnStatus
    ) -> None:
        with LogContext.bind(actor_id=actor.id, sacco_id=ret.sacco_id, return_id=ret.id):
            logger.info(
                event,
                extra={
                    "from_status": from_status.value,
                    "to_status": ReturnStatus(ret.status).value,
                    "version": ret.version,
                },
            )

    # ------------------------------------------------------------------
    # Drafting
    # ------------------------------------------------------------------

    def create_draft(
        self, sacco_id: UUID, reporting_month: date | datetime, actor: Actor
    ) -> MonthlyReturnInfo:
        """
        Open the single return for a SACCO and month.

        The month is normalized to its first day.  Fails if any return for
        the period exists, whatever its status; resubmission reuses the
        existing record via ``reopen_for_resubmission``.

        Raises:
            AuthorizationError: Actor is not SACCO staff of this SACCO.
            SaccoNotFoundError: SACCO id is absent.
            DuplicateReturnError: A return for the period already exists.
        """
        self._authorize(
            can_submit_return(actor, sacco_id), actor, "create monthly return"
        )
        month = normalize_reporting_month(reporting_month)

        if self.session.get(Sacco, sacco_id) is None:
            raise SaccoNotFoundError(str(sacco_id))

        if self._find_existing(sacco_id, month) is not None:
            logger.warning(
                "return_duplicate_period",
                extra={"sacco_id": str(sacco_id), "reporting_month": month},
            )
            raise DuplicateReturnError(str(sacco_id), month.isoformat())

        now = self._clock.now_utc()
        ret = MonthlyReturn(
            sacco_id=sacco_id,
            reporting_month=month,
            status=ReturnStatus.DRAFT,
            created_at=now,
            updated_at=now,
            created_by_id=actor.id,
            updated_by_id=actor.id,
        )
        try:
            with self.session.begin_nested():
                self.session.add(ret)
        except IntegrityError as exc:
            logger.warning(
                "return_duplicate_period",
                extra={"sacco_id": str(sacco_id), "reporting_month": month},
            )
            raise DuplicateReturnError(str(sacco_id), month.isoformat()) from exc

        self._auditor.record(
            AuditAction.RETURN_CREATED, "MonthlyReturn", ret.id, actor.id,
            new_values={"sacco_id": sacco_id, "reporting_month": month,
                        "status": ret.status},
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=sacco_id, return_id=ret.id):
            logger.info("return_draft_created", extra={"reporting_month": month})
        return MonthlyReturnInfo.from_model(ret)

    def attach_financial_data(
        self, return_id: UUID, data: FinancialDataInput, actor: Actor
    ) -> MonthlyReturnInfo:
        """
        Set or replace the return's financial data.  Draft only.

        Money and counts must be >= 0 and PAR ratios within [0, 100]; values
        are stored quantized to 2 decimal places.

        Raises:
            AuthorizationError, ReturnNotFoundError, InvalidReturnTransitionError,
            ValidationError
        """
        operation = "attach financial data"
        ret = self._load_visible(return_id, actor, operation)
        self._authorize(can_submit_return(actor, ret.sacco_id), actor, operation)
        self._require_editable(ret, operation)
        values = validate_financial_data(data)

        now = self._clock.now_utc()
        existing = ret.financial_data
        before = _financial_snapshot(existing)
        if existing is None:
            ret.financial_data = FinancialData(
                return_id=ret.id,
                recorded_at=now,
                recorded_by_id=actor.id,
                **values,
            )
        else:
            for name, value in values.items():
                setattr(existing, name, value)
            existing.recorded_at = now
            existing.recorded_by_id = actor.id
        self._touch(ret, actor, now)
        self._flush(ret, operation)

        self._auditor.record(
            AuditAction.FINANCIAL_DATA_ATTACHED, "MonthlyReturn", ret.id, actor.id,
            old_values=before, new_values=values,
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=ret.sacco_id, return_id=ret.id):
            logger.info(
                "financial_data_attached",
                extra={"replaced": before is not None},
            )
        return MonthlyReturnInfo.from_model(ret)

    def attach_document(
        self, return_id: UUID, doc: DocumentInput, actor: Actor
    ) -> DocumentInfo:
        """
        Attach supporting document metadata.  Draft only.

        A document of a type already present replaces the earlier one,
        except Other_Supporting, which accumulates.
        """
        operation = "attach document"
        ret = self._load_visible(return_id, actor, operation)
        self._authorize(can_submit_return(actor, ret.sacco_id), actor, operation)
        self._require_editable(ret, operation)
        doc = validate_document(doc, self._max_document_bytes)

        replaced: list[Document] = []
        if doc.document_type != DocumentType.OTHER_SUPPORTING:
            replaced = [
                d for d in ret.documents
                if DocumentType(d.document_type) == doc.document_type
            ]
            for old in replaced:
                ret.documents.remove(old)

        now = self._clock.now_utc()
        document = Document(
            return_id=ret.id,
            document_type=doc.document_type,
            file_name=doc.file_name,
            storage_path=doc.storage_path,
            size_bytes=doc.size_bytes,
            uploaded_by_id=actor.id,
            uploaded_at=now,
        )
        ret.documents.append(document)
        self._touch(ret, actor, now)
        self._flush(ret, operation)

        self._auditor.record(
            AuditAction.DOCUMENT_ATTACHED, "MonthlyReturn", ret.id, actor.id,
            old_values={"replaced": [d.file_name for d in replaced]} if replaced else None,
            new_values={
                "document_id": document.id,
                "document_type": doc.document_type,
                "file_name": doc.file_name,
                "size_bytes": doc.size_bytes,
            },
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=ret.sacco_id, return_id=ret.id):
            logger.info(
                "document_attached",
                extra={
                    "document_type": doc.document_type.value,
                    "replaced_count": len(replaced),
                },
            )
        return DocumentInfo.from_model(document)

    def remove_document(self, document_id: UUID, actor: Actor) -> None:
        """Detach a document from a Draft return."""
        operation = "remove document"
        document = self.session.get(Document, document_id)
        if document is None:
            if is_regulator(actor):
                raise DocumentNotFoundError(str(document_id))
            self._authorize(False, actor, operation)

        ret = self._load_visible(document.return_id, actor, operation)
        self._authorize(can_submit_return(actor, ret.sacco_id), actor, operation)
        self._require_editable(ret, operation)

        before = {
            "document_id": document.id,
            "document_type": document.document_type,
            "file_name": document.file_name,
        }
        ret.documents.remove(document)
        self._touch(ret, actor, self._clock.now_utc())
        self._flush(ret, operation)

        self._auditor.record(
            AuditAction.DOCUMENT_REMOVED, "MonthlyReturn", ret.id, actor.id,
            old_values=before,
        )
        with LogContext.bind(actor_id=actor.id, sacco_id=ret.sacco_id, return_id=ret.id):
            logger.info("document_removed", extra={"document_id": str(document_id)})

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, return_id: UUID, actor: Actor) -> MonthlyReturnInfo:
        """
        Draft -> Submitted.

        Raises:
            AuthorizationError: Actor is not SACCO staff of the owning SACCO.
            InvalidReturnTransitionError: Return is not Draft.
            IncompleteReturnError: No financial data attached.
        """
        operation = "submit"
        ret = self._load_visible(return_id, actor, operation)
        self._authorize(can_submit_return(actor, ret.sacco_id), actor, operation)
        transition = self._require_transition(ret, ReturnAction.SUBMIT, operation)
        if ret.financial_data is None:
            logger.warning(
                "return_incomplete",
                extra={"return_id": str(ret.id), "missing": "financial_data"},
            )
            raise IncompleteReturnError(str(ret.id), "financial data")

        from_status = ReturnStatus(ret.status)
        before = _status_snapshot(ret)
        now = self._clock.now_utc()
        self._apply(ret, transition, actor, now)
        ret.submitted_by_id = actor.id
        ret.submission_date = now
        self._flush(ret, operation)

        self._auditor.record(
            AuditAction.RETURN_SUBMITTED, "MonthlyReturn", ret.id, actor.id,
            old_values=before, new_values=_status_snapshot(ret),
        )
        self._log_transition("return_submitted", ret, actor, from_status)
        return MonthlyReturnInfo.from_model(ret)

    def begin_review(self, return_id: UUID, actor: Actor) -> MonthlyReturnInfo:
        """
        Submitted -> Under_Review.  Regulators only; checked before lookup.
        """
        operation = "begin review"
        self._authorize(can_review_return(actor), actor, operation)
        ret = self._load_visible(return_id, actor, operation)
        transition = self._require_transition(ret, ReturnAction.BEGIN_REVIEW, operation)

        from_status = ReturnStatus(ret.status)
        before = _status_snapshot(ret)
        self._apply(ret, transition, actor, self._clock.now_utc())
        self._flush(ret, operation)

        self._auditor.record(
            AuditAction.RETURN_REVIEW_STARTED, "MonthlyReturn", ret.id, actor.id,
            old_values=before, new_values=_status_snapshot(ret),
        )
        self._log_transition("return_review_started", ret, actor, from_status)
        return MonthlyReturnInfo.from_model(ret)

    def decide(
        self,
        return_id: UUID,
        decision: ReviewDecision | str,
        notes: str | None,
        actor: Actor,
    ) -> MonthlyReturnInfo:
        """
        Under_Review -> Approved | Rejected | Flagged.

        Records the reviewer, review date and notes.

        Raises:
            AuthorizationError: Actor is not a regulator.
            InvalidDecisionError: ``decision`` is not one of the three outcomes.
            InvalidReturnTransitionError: Return is not Under_Review.
        """
        operation = "decide"
        self._authorize(can_review_return(actor), actor, operation)
        outcome = parse_decision(decision)
        ret = self._load_visible(return_id, actor, operation)
        transition = self._require_transition(ret, outcome.action, operation)

        from_status = ReturnStatus(ret.status)
        before = _status_snapshot(ret)
        now = self._clock.now_utc()
        self._apply(ret, transition, actor, now)
        ret.reviewed_by_id = actor.id
        ret.review_date = now
        ret.review_notes = (notes or "").strip() or None
        self._flush(ret, operation)

        self._auditor.record(
            _DECISION_AUDIT_ACTIONS[outcome], "MonthlyReturn", ret.id, actor.id,
            old_values=before, new_values=_status_snapshot(ret),
        )
        self._log_transition("return_decided", ret, actor, from_status)
        return MonthlyReturnInfo.from_model(ret)

    def reopen_for_resubmission(
        self, return_id: UUID, actor: Actor
    ) -> MonthlyReturnInfo:
        """
        Rejected | Flagged -> Draft.

        Review fields are cleared; financial data and documents stay attached
        and may be overwritten before the next submit.
        """
        operation = "reopen for resubmission"
        ret = self._load_visible(return_id, actor, operation)
        self._authorize(can_submit_return(actor, ret.sacco_id), actor, operation)
        transition = self._require_transition(ret, ReturnAction.REOPEN, operation)

        from_status = ReturnStatus(ret.status)
        before = _status_snapshot(ret)
        self._apply(ret, transition, actor, self._clock.now_utc())
        self._flush(ret, operation)

        self._auditor.record(
            AuditAction.RETURN_REOPENED, "MonthlyReturn", ret.id, actor.id,
            old_values=before, new_values=_status_snapshot(ret),
        )
        self._log_transition("return_reopened", ret, actor, from_status)
        return MonthlyReturnInfo.from_model(ret)
