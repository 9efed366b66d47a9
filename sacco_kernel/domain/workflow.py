"""
Monthly return state machine (``sacco_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the return lifecycle: the closed ``ReturnStatus``
enumeration, the actions that move a return between statuses, and the
declarative transition table the workflow service consults before every
status change.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``MONTHLY_RETURN_WORKFLOW.transitions`` is the only source of legal
  status changes.  Anything not listed is illegal.
* Transitions reference only states in ``Workflow.states``.
* Approved is terminal.  Rejected and Flagged leave only via explicit reopen.

    Draft --submit--> Submitted --begin_review--> Under_Review
    Under_Review --approve--> Approved
    Under_Review --reject--> Rejected --reopen--> Draft
    Under_Review --flag--> Flagged --reopen--> Draft
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sacco_kernel.exceptions import InvalidDecisionError


class ReturnStatus(str, Enum):
    """Monthly return lifecycle states."""

    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    UNDER_REVIEW = "Under_Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    FLAGGED = "Flagged"


class ReturnAction(str, Enum):
    """Operations that change a return's status."""

    SUBMIT = "submit"
    BEGIN_REVIEW = "begin_review"
    APPROVE = "approve"
    REJECT = "reject"
    FLAG = "flag"
    REOPEN = "reopen"


class ReviewDecision(str, Enum):
    """Outcomes a reviewer may record on a return under review."""

    APPROVED = "Approved"
    REJECTED = "Rejected"
    FLAGGED = "Flagged"

    @property
    def action(self) -> ReturnAction:
        return _DECISION_ACTIONS[self]


_DECISION_ACTIONS: dict[ReviewDecision, ReturnAction] = {
    ReviewDecision.APPROVED: ReturnAction.APPROVE,
    ReviewDecision.REJECTED: ReturnAction.REJECT,
    ReviewDecision.FLAGGED: ReturnAction.FLAG,
}


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the workflow service does.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow."""
    from_state: ReturnStatus
    to_state: ReturnStatus
    action: ReturnAction
    guard: Guard | None = None
    clears_review: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    """
    name: str
    description: str
    initial_state: ReturnStatus
    states: tuple[ReturnStatus, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[ReturnStatus, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(f"Initial state {self.initial_state} not in states")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Transition {t.action} references unknown state"
                )

    def find(self, current: ReturnStatus, action: ReturnAction) -> Transition | None:
        for t in self.transitions:
            if t.from_state == current and t.action == action:
                return t
        return None

    def allowed_actions(self, current: ReturnStatus) -> tuple[ReturnAction, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == current)


# =========================================================================
# Guards
# =========================================================================

FINANCIAL_DATA_PRESENT = Guard(
    name="financial_data_present",
    description="Return carries its FinancialData record",
)
SUBMITTER_AFFILIATED = Guard(
    name="submitter_affiliated",
    description="Actor holds a SACCO role affiliated with the return's SACCO",
)
REVIEWER_IS_REGULATOR = Guard(
    name="reviewer_is_regulator",
    description="Actor holds a ministry role",
)


# =========================================================================
# Monthly return workflow
# =========================================================================

MONTHLY_RETURN_WORKFLOW = Workflow(
    name="monthly_return",
    description="SACCO monthly compliance return submission and review",
    initial_state=ReturnStatus.DRAFT,
    states=tuple(ReturnStatus),
    transitions=(
        Transition(
            ReturnStatus.DRAFT, ReturnStatus.SUBMITTED, ReturnAction.SUBMIT,
            guard=FINANCIAL_DATA_PRESENT,
        ),
        Transition(
            ReturnStatus.SUBMITTED, ReturnStatus.UNDER_REVIEW,
            ReturnAction.BEGIN_REVIEW, guard=REVIEWER_IS_REGULATOR,
        ),
        Transition(
            ReturnStatus.UNDER_REVIEW, ReturnStatus.APPROVED,
            ReturnAction.APPROVE, guard=REVIEWER_IS_REGULATOR,
        ),
        Transition(
            ReturnStatus.UNDER_REVIEW, ReturnStatus.REJECTED,
            ReturnAction.REJECT, guard=REVIEWER_IS_REGULATOR,
        ),
        Transition(
            ReturnStatus.UNDER_REVIEW, ReturnStatus.FLAGGED,
            ReturnAction.FLAG, guard=REVIEWER_IS_REGULATOR,
        ),
        Transition(
            ReturnStatus.REJECTED, ReturnStatus.DRAFT, ReturnAction.REOPEN,
            guard=SUBMITTER_AFFILIATED, clears_review=True,
        ),
        Transition(
            ReturnStatus.FLAGGED, ReturnStatus.DRAFT, ReturnAction.REOPEN,
            guard=SUBMITTER_AFFILIATED, clears_review=True,
        ),
    ),
    terminal_states=(ReturnStatus.APPROVED,),
)

RETURN_TRANSITIONS: dict[ReturnStatus, frozenset[ReturnStatus]] = {
    status: frozenset(
        t.to_state
        for t in MONTHLY_RETURN_WORKFLOW.transitions
        if t.from_state == status
    )
    for status in ReturnStatus
}

# Statuses in which financial data and documents may change.
EDITABLE_STATUSES: frozenset[ReturnStatus] = frozenset({ReturnStatus.DRAFT})

# Statuses awaiting a regulator.
PENDING_REVIEW_STATUSES: frozenset[ReturnStatus] = frozenset({
    ReturnStatus.SUBMITTED,
    ReturnStatus.UNDER_REVIEW,
})

# Statuses that count as "submitted" for compliance purposes.
SUBMITTED_STATUSES: frozenset[ReturnStatus] = frozenset(
    s for s in ReturnStatus if s != ReturnStatus.DRAFT
)


def resolve_transition(
    current: ReturnStatus, action: ReturnAction
) -> Transition | None:
    """Look up the transition for ``action`` from ``current``, or None if illegal."""
    return MONTHLY_RETURN_WORKFLOW.find(ReturnStatus(current), action)


def parse_decision(value: ReviewDecision | str) -> ReviewDecision:
    """Coerce a reviewer's decision, raising InvalidDecisionError if it is not an outcome."""
    if isinstance(value, ReviewDecision):
        return value
    try:
        return ReviewDecision(value)
    except ValueError:
        raise InvalidDecisionError(str(value)) from None
