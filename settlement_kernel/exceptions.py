"""
Typed Exception Hierarchy for the Settlement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure the engine reports must tell the caller what to do next:
revise the input, re-fetch state, show a permission message, or retry.
Callers decide by TYPE and by CODE, never by parsing message strings.

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.approve_expense(actor, expense_id)
    except OverScheduleError as e:
        api_response(code=e.code, line_item=e.line_item_id, total=e.attempted_total)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from SettlementKernelError:

    SettlementKernelError (base)
    |
    +-- ValidationError                (malformed input, rejected before mutation)
    |   +-- InvalidAmountError
    |   +-- DuplicateItemNumberError
    |   +-- EmptyReviewerChainError
    |   +-- ReceiptRequiredError
    |   +-- InvalidCategoryError
    |   +-- ApplicationProjectMismatchError
    |
    +-- InvariantViolationError        (revise input and retry)
    |   +-- OverScheduleError
    |   +-- NegativeCompletionError
    |
    +-- StateError                     (stale client view: re-fetch, re-decide)
    |   +-- NotCurrentReviewerError
    |   +-- AlreadyApprovedError
    |   +-- UnresolvedExpensesError
    |   +-- NotFinalizedError
    |   +-- InvalidTransitionError
    |   +-- ApplicationLockedError
    |   +-- OpenApplicationExistsError
    |   +-- ExpenseNotApprovedError
    |   +-- ExpenseAlreadyReversedError
    |
    +-- NotFoundError
    |   +-- ProjectNotFoundError
    |   +-- LineItemNotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- PayApplicationNotFoundError
    |
    +-- ForbiddenError                 (authorization; never auto-retried)
    |
    +-- ConflictError                  (optimistic lock; retry whole transition)
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Validation      | INVALID_AMOUNT                | Non-positive expense / negative stored
                | DUPLICATE_ITEM_NUMBER         | Item number reused within a project
                | EMPTY_REVIEWER_CHAIN          | Submit with no (or duplicate) reviewers
                | RECEIPT_REQUIRED              | Policy requires receipt before approval
----------------|-------------------------------|---------------------------------------
Invariant       | OVER_SCHEDULE                 | Line item would exceed scheduled value
                | NEGATIVE_COMPLETION           | Completed-to-date would go below zero
----------------|-------------------------------|---------------------------------------
State           | NOT_CURRENT_REVIEWER          | Actor is not chain[current index]
                | ALREADY_APPROVED              | Expense already approved
                | UNRESOLVED_EXPENSES           | Pending expenses block submission
                | NOT_FINALIZED                 | Export before finalization
                | INVALID_TRANSITION            | Status does not allow the transition
                | APPLICATION_LOCKED            | Contractor write while under review
                | OPEN_APPLICATION_EXISTS       | Second open application on a project
                | EXPENSE_NOT_APPROVED          | Reversing a pending expense
                | EXPENSE_ALREADY_REVERSED      | Second reversal of the same expense
----------------|-------------------------------|---------------------------------------
Lookup          | *_NOT_FOUND                   | Unknown id
----------------|-------------------------------|---------------------------------------
Access          | FORBIDDEN                     | Wrong role or not an org member
Concurrency     | CONFLICT                      | Concurrent modification detected
Immutability    | IMMUTABILITY_VIOLATION        | Modifying an append-only record
Audit           | AUDIT_CHAIN_BROKEN            | Hash chain tampering detected

===============================================================================
"""


class SettlementKernelError(Exception):
    """
    Base exception for all settlement kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "SETTLEMENT_KERNEL_ERROR"


# Validation exceptions


class ValidationError(SettlementKernelError):
    """Malformed input. Always rejected before any mutation."""

    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Monetary amount is outside the accepted range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: str, reason: str):
        self.amount = amount
        self.reason = reason
        super().__init__(f"Invalid amount {amount}: {reason}")


class DuplicateItemNumberError(ValidationError):
    """Item number already used in the project's schedule of values."""

    code: str = "DUPLICATE_ITEM_NUMBER"

    def __init__(self, project_id: str, item_number: int):
        self.project_id = project_id
        self.item_number = item_number
        super().__init__(
            f"Item number {item_number} already exists in project {project_id}"
        )


class EmptyReviewerChainError(ValidationError):
    """Reviewer chain is empty or lists a reviewer twice."""

    code: str = "EMPTY_REVIEWER_CHAIN"

    def __init__(self, project_id: str, reason: str):
        self.project_id = project_id
        self.reason = reason
        super().__init__(f"Invalid reviewer chain for project {project_id}: {reason}")


class ReceiptRequiredError(ValidationError):
    """Ledger policy requires a receipt before an expense can be approved."""

    code: str = "RECEIPT_REQUIRED"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} has no receipt attached")


class InvalidCategoryError(ValidationError):
    """Expense category is blank or reserved."""

    code: str = "INVALID_CATEGORY"

    def __init__(self, category: str, reason: str):
        self.category = category
        self.reason = reason
        super().__init__(f"Invalid expense category {category!r}: {reason}")


class ApplicationProjectMismatchError(ValidationError):
    """Pay application and line item belong to different projects."""

    code: str = "APPLICATION_PROJECT_MISMATCH"

    def __init__(self, pay_application_id: str, line_item_id: str):
        self.pay_application_id = pay_application_id
        self.line_item_id = line_item_id
        super().__init__(
            f"Pay application {pay_application_id} is not on the project of line item {line_item_id}"
        )


# Invariant violations


class InvariantViolationError(SettlementKernelError):
    """
    The mutation would break a ledger invariant.

    Recoverable: the caller revises the input and retries.  No partial
    state is ever left behind.
    """

    code: str = "INVARIANT_VIOLATION"


class OverScheduleError(InvariantViolationError):
    """previous + this period + stored would exceed the scheduled value."""

    code: str = "OVER_SCHEDULE"

    def __init__(
        self,
        line_item_id: str,
        scheduled_value: str,
        attempted_total: str,
    ):
        self.line_item_id = line_item_id
        self.scheduled_value = scheduled_value
        self.attempted_total = attempted_total
        super().__init__(
            f"Line item {line_item_id} would reach {attempted_total}, "
            f"exceeding scheduled value {scheduled_value}"
        )


class NegativeCompletionError(InvariantViolationError):
    """Completed-to-date would drop below zero (over-reversal)."""

    code: str = "NEGATIVE_COMPLETION"

    def __init__(self, line_item_id: str, attempted_total: str):
        self.line_item_id = line_item_id
        self.attempted_total = attempted_total
        super().__init__(
            f"Line item {line_item_id} completed-to-date would be {attempted_total}"
        )


# State errors


class StateError(SettlementKernelError):
    """
    The caller's view of the aggregate is stale.

    Re-fetch current state and decide again; do not blindly retry.
    """

    code: str = "STATE_ERROR"


class NotCurrentReviewerError(StateError):
    """Actor is not the reviewer at the current chain position."""

    code: str = "NOT_CURRENT_REVIEWER"

    def __init__(
        self,
        pay_application_id: str,
        reviewer_id: str,
        expected_reviewer_id: str | None,
    ):
        self.pay_application_id = pay_application_id
        self.reviewer_id = reviewer_id
        self.expected_reviewer_id = expected_reviewer_id
        super().__init__(
            f"Reviewer {reviewer_id} cannot act on pay application "
            f"{pay_application_id} (awaiting {expected_reviewer_id})"
        )


class AlreadyApprovedError(StateError):
    """Expense has already been approved."""

    code: str = "ALREADY_APPROVED"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} is already approved")


class UnresolvedExpensesError(StateError):
    """Pending expenses must be approved or removed before submission."""

    code: str = "UNRESOLVED_EXPENSES"

    def __init__(self, pay_application_id: str, pending_expense_ids: list[str]):
        self.pay_application_id = pay_application_id
        self.pending_expense_ids = pending_expense_ids
        super().__init__(
            f"Pay application {pay_application_id} has "
            f"{len(pending_expense_ids)} unresolved expense(s)"
        )


class NotFinalizedError(StateError):
    """Certificate requested for a pay application that is not finalized."""

    code: str = "NOT_FINALIZED"

    def __init__(self, pay_application_id: str, status: str):
        self.pay_application_id = pay_application_id
        self.status = status
        super().__init__(
            f"Pay application {pay_application_id} is {status}, not finalized"
        )


class InvalidTransitionError(StateError):
    """The pay application's status does not allow this transition."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, pay_application_id: str, from_status: str, action: str):
        self.pay_application_id = pay_application_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} pay application {pay_application_id} "
            f"from status {from_status}"
        )


class ApplicationLockedError(StateError):
    """Contractor write attempted while the open application is in review."""

    code: str = "APPLICATION_LOCKED"

    def __init__(self, pay_application_id: str, status: str):
        self.pay_application_id = pay_application_id
        self.status = status
        super().__init__(
            f"Pay application {pay_application_id} is {status}; "
            "contractor changes are not accepted"
        )


class OpenApplicationExistsError(StateError):
    """The project already has a pay application that is not finalized."""

    code: str = "OPEN_APPLICATION_EXISTS"

    def __init__(self, project_id: str, pay_application_id: str):
        self.project_id = project_id
        self.pay_application_id = pay_application_id
        super().__init__(
            f"Project {project_id} already has open pay application {pay_application_id}"
        )


class ExpenseNotApprovedError(StateError):
    """Only approved expenses can be reversed."""

    code: str = "EXPENSE_NOT_APPROVED"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense {expense_id} is not approved")


class ExpenseAlreadyReversedError(StateError):
    """Expense already has a reversal entry."""

    code: str = "EXPENSE_ALREADY_REVERSED"

    def __init__(self, expense_id: str, reversal_id: str):
        self.expense_id = expense_id
        self.reversal_id = reversal_id
        super().__init__(f"Expense {expense_id} already reversed by {reversal_id}")


# Lookup errors


class NotFoundError(SettlementKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class ProjectNotFoundError(NotFoundError):
    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class LineItemNotFoundError(NotFoundError):
    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, line_item_id: str):
        self.line_item_id = line_item_id
        super().__init__(f"Line item not found: {line_item_id}")


class ExpenseNotFoundError(NotFoundError):
    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class PayApplicationNotFoundError(NotFoundError):
    code: str = "PAY_APPLICATION_NOT_FOUND"

    def __init__(self, pay_application_id: str):
        self.pay_application_id = pay_application_id
        super().__init__(f"Pay application not found: {pay_application_id}")


# Access and concurrency


class ForbiddenError(SettlementKernelError):
    """Actor lacks the role or organization membership for the operation."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_id: str, action: str, reason: str):
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        super().__init__(f"Actor {actor_id} may not {action}: {reason}")


class ConflictError(SettlementKernelError):
    """
    Optimistic locking conflict detected.

    The caller retries the whole transition against fresh state.
    """

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, detail: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}"
            + (f": {detail}" if detail else "")
        )


# Immutability


class ImmutabilityError(SettlementKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Approved expenses, snapshot lines, review decisions, finalized pay
    applications and audit events are append-only.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit


class AuditError(SettlementKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at {audit_event_id}: "
            f"expected {expected_hash}, found {actual_hash}"
        )
