"""
Typed Exception Hierarchy for the SACCO Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every core operation either returns a DTO or raises exactly one of five
error kinds.  The presentation layer maps the KIND to a user-facing message
and status code; it never parses message strings.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        workflow.submit(return_id, actor)
    except InvalidReturnTransitionError as e:
        flash(f"Return is {e.current_status}, cannot {e.operation}")
    except AuthorizationError:
        return forbidden()

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    SaccoKernelError (base)
    |
    +-- ValidationError                 bad input, caller corrects and retries
    |   +-- InvalidDecisionError
    |
    +-- ConflictError                   uniqueness / dependency conflict
    |   +-- DuplicateRegistrationNumberError
    |   +-- DuplicateReturnError
    |   +-- DuplicateUsernameError
    |   +-- DuplicateEmailError
    |   +-- SaccoHasDependentsError
    |
    +-- NotFoundError                   referenced entity absent
    |   +-- SaccoNotFoundError
    |   +-- ReturnNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- UserNotFoundError
    |
    +-- AuthorizationError              actor lacks permission
    |
    +-- StateError                      illegal state transition
        +-- InvalidReturnTransitionError
        +-- IncompleteReturnError
        +-- StaleReturnError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category       | Code                          | When Raised
---------------|-------------------------------|-------------------------------------
Validation     | VALIDATION_ERROR              | Required field blank, negative money
               | INVALID_DECISION              | Review decision not a terminal state
---------------|-------------------------------|-------------------------------------
Conflict       | DUPLICATE_REGISTRATION_NUMBER | Registration number already used
               | DUPLICATE_RETURN              | Return exists for (SACCO, month)
               | DUPLICATE_USERNAME            | Username already taken
               | DUPLICATE_EMAIL               | Email already taken
               | SACCO_HAS_DEPENDENTS          | Delete blocked by users / returns
---------------|-------------------------------|-------------------------------------
Not found      | SACCO_NOT_FOUND               | SACCO id absent
               | RETURN_NOT_FOUND              | Return id absent (regulators only)
               | DOCUMENT_NOT_FOUND            | Document id absent
               | USER_NOT_FOUND                | User id absent
---------------|-------------------------------|-------------------------------------
Authorization  | AUTHORIZATION_DENIED          | Guard predicate returned False
---------------|-------------------------------|-------------------------------------
State          | INVALID_RETURN_TRANSITION     | Operation not allowed from status
               | INCOMPLETE_RETURN             | Submit without financial data
               | STALE_RETURN                  | Concurrent writer won the row
               | IMMUTABILITY_VIOLATION        | Editing approved financial data

===============================================================================
"""


class SaccoKernelError(Exception):
    """
    Base exception for all kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "SACCO_KERNEL_ERROR"


# Validation


class ValidationError(SaccoKernelError):
    """Input shape or value is invalid; names the first violated field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidDecisionError(ValidationError):
    """Review decision is not one of Approved, Rejected, Flagged."""

    code: str = "INVALID_DECISION"

    def __init__(self, decision: str):
        self.decision = decision
        super().__init__(
            "decision",
            f"'{decision}' is not a review outcome (Approved, Rejected, Flagged)",
        )


# Conflicts


class ConflictError(SaccoKernelError):
    """Base exception for uniqueness and dependency conflicts."""

    code: str = "CONFLICT"


class DuplicateRegistrationNumberError(ConflictError):
    """Another SACCO already holds this registration number."""

    code: str = "DUPLICATE_REGISTRATION_NUMBER"

    def __init__(self, registration_number: str):
        self.registration_number = registration_number
        super().__init__(
            f"SACCO with registration number {registration_number} already exists"
        )


class DuplicateReturnError(ConflictError):
    """A return already exists for this SACCO and reporting month."""

    code: str = "DUPLICATE_RETURN"

    def __init__(self, sacco_id: str, reporting_month: str):
        self.sacco_id = sacco_id
        self.reporting_month = reporting_month
        super().__init__(
            f"A monthly return for SACCO {sacco_id} and month "
            f"{reporting_month} already exists"
        )


class DuplicateUsernameError(ConflictError):
    """Username is already registered."""

    code: str = "DUPLICATE_USERNAME"

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username already exists: {username}")


class DuplicateEmailError(ConflictError):
    """Email is already registered to another user."""

    code: str = "DUPLICATE_EMAIL"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email already exists: {email}")


class SaccoHasDependentsError(ConflictError):
    """SACCO cannot be deleted while users or returns reference it."""

    code: str = "SACCO_HAS_DEPENDENTS"

    def __init__(self, sacco_id: str, dependent: str):
        self.sacco_id = sacco_id
        self.dependent = dependent
        super().__init__(
            f"Cannot delete SACCO {sacco_id}: has dependent {dependent}. "
            "Deactivate instead."
        )


# Not found


class NotFoundError(SaccoKernelError):
    """Base exception for absent entities."""

    code: str = "NOT_FOUND"


class SaccoNotFoundError(NotFoundError):
    """SACCO with given ID was not found."""

    code: str = "SACCO_NOT_FOUND"

    def __init__(self, sacco_id: str):
        self.sacco_id = sacco_id
        super().__init__(f"SACCO not found: {sacco_id}")


class ReturnNotFoundError(NotFoundError):
    """Monthly return with given ID was not found."""

    code: str = "RETURN_NOT_FOUND"

    def __init__(self, return_id: str):
        self.return_id = return_id
        super().__init__(f"Monthly return not found: {return_id}")


class DocumentNotFoundError(NotFoundError):
    """Document with given ID was not found."""

    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class UserNotFoundError(NotFoundError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


# Authorization


class AuthorizationError(SaccoKernelError):
    """
    Actor lacks permission for the operation.

    The message never says whether the target exists: an actor without
    visibility gets this error for present and absent resources alike.
    """

    code: str = "AUTHORIZATION_DENIED"

    def __init__(self, actor_id: str, operation: str):
        self.actor_id = actor_id
        self.operation = operation
        super().__init__(f"Actor {actor_id} is not permitted to {operation}")


# State


class StateError(SaccoKernelError):
    """Base exception for illegal state transitions."""

    code: str = "INVALID_STATE"


class InvalidReturnTransitionError(StateError):
    """Operation is not allowed from the return's current status."""

    code: str = "INVALID_RETURN_TRANSITION"

    def __init__(self, return_id: str, current_status: str, operation: str):
        self.return_id = return_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} monthly return {return_id} "
            f"in status {current_status}"
        )


class IncompleteReturnError(StateError):
    """Return cannot be submitted without its financial data."""

    code: str = "INCOMPLETE_RETURN"

    def __init__(self, return_id: str, missing: str):
        self.return_id = return_id
        self.missing = missing
        super().__init__(f"Monthly return {return_id} is missing {missing}")


class StaleReturnError(StateError):
    """The return changed under a concurrent transaction."""

    code: str = "STALE_RETURN"

    def __init__(self, return_id: str, operation: str):
        self.return_id = return_id
        self.operation = operation
        super().__init__(
            f"Monthly return {return_id} was modified concurrently; "
            f"{operation} was not applied"
        )


class ImmutabilityViolationError(StateError):
    """Attempted to modify a record that is sealed."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id}: {reason}")
