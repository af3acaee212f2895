"""
ExpenseLedgerService -- contractor cost entries and their approval.

Responsibility:
    Records expenses against line items, approves them one by one,
    deletes rejected pending entries and issues reversal entries for
    approved ones.  Approval is the only path by which an expense reaches
    a line item's ``this_period``.

Architecture position:
    Kernel > Services.  Uses SovLedgerService for every ledger update.

Invariants enforced:
    - New expenses are pending and never touch the schedule of values.
    - Approval is one-way; an approved expense is frozen (ORM listener).
    - Approval re-checks the line's ceiling BEFORE flipping the flag, so
      an over-schedule approval changes nothing.
    - Corrections to approved expenses are negative reversal entries,
      one per original expense, themselves pending until approved.

Failure modes:
    - InvalidAmountError on non-positive amounts or amounts finer than
      the policy's money quantum.
    - InvalidCategoryError on a blank or reserved category.
    - AlreadyApprovedError on re-approval, removal of an approved expense
      or attaching a receipt to it.
    - ReceiptRequiredError when policy demands a receipt.
    - OverScheduleError / NegativeCompletionError on approval.
    - ExpenseNotApprovedError / ExpenseAlreadyReversedError on reversal.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.policy import LedgerPolicy
from settlement_kernel.exceptions import (
    AlreadyApprovedError,
    ExpenseAlreadyReversedError,
    ExpenseNotApprovedError,
    InvalidAmountError,
    InvalidCategoryError,
    ReceiptRequiredError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_event import AuditAction
from settlement_kernel.models.expense import ExpenseModel
from settlement_kernel.services.auditor_service import AuditorService
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.sov_ledger_service import SovLedgerService, parse_amount
from settlement_kernel.services.store import SettlementStore

logger = get_logger("services.expense_ledger")


class ExpenseLedgerService(BaseService):
    """Write side of the expense ledger."""

    def __init__(
        self,
        session: Session,
        store: SettlementStore,
        auditor: AuditorService,
        sov_ledger: SovLedgerService,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        super().__init__(session, clock, policy)
        self._store = store
        self._auditor = auditor
        self._sov = sov_ledger

    def add_expense(
        self,
        actor_id: UUID,
        line_item_id: UUID,
        amount: Decimal | str | int,
        category: str,
        incurred_on: date,
        description: str = "",
        comment: str = "",
    ) -> ExpenseModel:
        """Record a pending expense dated in the project's open billing period."""
        value = parse_amount(amount, allow_zero=False, quantum=self.policy.money_quantum)
        if not category or not category.strip():
            raise InvalidCategoryError(category or "", "category is required")
        if category.strip() == self.policy.reversal_category:
            raise InvalidCategoryError(category, "reserved for reversal entries")

        line_item = self._store.load_line_item(line_item_id)
        project = self._store.load_project(line_item.project_id)

        expense = ExpenseModel(
            line_item_id=line_item.id,
            amount=value,
            category=category.strip(),
            incurred_on=incurred_on,
            billing_period=project.open_period_number,
            description=description,
            comment=comment,
            approved=False,
            has_receipt=False,
            created_by_id=actor_id,
        )
        self._store.save_expense(expense)
        self._auditor.record_expense_change(
            expense.id,
            AuditAction.EXPENSE_ADDED,
            actor_id,
            line_item_id=line_item.id,
            amount=value,
            category=expense.category,
            billing_period=expense.billing_period,
        )
        logger.info(
            "expense_added",
            extra={
                "expense_id": str(expense.id),
                "line_item_id": str(line_item.id),
                "amount": str(value),
            },
        )
        return expense

    def approve_expense(self, actor_id: UUID, expense_id: UUID) -> ExpenseModel:
        """
        Approve a pending expense and fold it into ``this_period``.

        The ceiling check runs on the prospective total first; on failure
        the expense stays pending and the line item is untouched.
        """
        expense = self._store.load_expense(expense_id, for_update=True)
        if expense.approved:
            raise AlreadyApprovedError(str(expense.id))
        if self.policy.require_receipt_for_approval and not expense.has_receipt and not expense.is_reversal:
            raise ReceiptRequiredError(str(expense.id))

        line_item = self._store.load_line_item(expense.line_item_id, for_update=True)
        self._sov.check_with_delta(line_item, expense.billing_period, expense.amount)

        expense.approved = True
        expense.approved_by_id = actor_id
        expense.approved_at = self.clock.now()
        expense.updated_by_id = actor_id
        self._store.save_expense(expense)
        self._auditor.record_expense_change(
            expense.id,
            AuditAction.EXPENSE_APPROVED,
            actor_id,
            line_item_id=line_item.id,
            amount=expense.amount,
        )
        self._sov.recompute(actor_id, line_item.id)

        logger.info(
            "expense_approved",
            extra={"expense_id": str(expense.id), "amount": str(expense.amount)},
        )
        return expense

    def remove_expense(self, actor_id: UUID, expense_id: UUID) -> None:
        """Reject a pending expense by deleting it."""
        expense = self._store.load_expense(expense_id, for_update=True)
        if expense.approved:
            raise AlreadyApprovedError(str(expense.id))

        line_item_id = expense.line_item_id
        amount = expense.amount
        self._store.delete_expense(expense)
        self._auditor.record_expense_change(
            expense_id,
            AuditAction.EXPENSE_REMOVED,
            actor_id,
            line_item_id=line_item_id,
            amount=amount,
        )
        logger.info("expense_removed", extra={"expense_id": str(expense_id)})

    def reverse_expense(self, actor_id: UUID, expense_id: UUID, reason: str) -> ExpenseModel:
        """
        Create a pending negative entry that cancels an approved expense.

        The reversal lands in the open billing period and reduces
        ``this_period`` once approved.
        """
        original = self._store.load_expense(expense_id, for_update=True)
        if not original.approved:
            raise ExpenseNotApprovedError(str(original.id))
        if original.is_reversal:
            raise InvalidAmountError(str(original.amount), "reversal entries cannot be reversed")
        existing = self._store.reversal_of(original.id)
        if existing is not None:
            raise ExpenseAlreadyReversedError(str(original.id), str(existing.id))

        line_item = self._store.load_line_item(original.line_item_id)
        project = self._store.load_project(line_item.project_id)

        reversal = ExpenseModel(
            line_item_id=original.line_item_id,
            amount=-original.amount,
            category=self.policy.reversal_category,
            incurred_on=self.clock.today(),
            billing_period=project.open_period_number,
            description=f"Reversal of expense {original.id}",
            comment=reason,
            approved=False,
            has_receipt=False,
            reverses_expense_id=original.id,
            created_by_id=actor_id,
        )
        self._store.save_expense(reversal)
        self._auditor.record_expense_change(
            reversal.id,
            AuditAction.EXPENSE_REVERSED,
            actor_id,
            reverses_expense_id=original.id,
            amount=reversal.amount,
            reason=reason,
        )
        logger.info(
            "expense_reversal_created",
            extra={"expense_id": str(original.id), "reversal_id": str(reversal.id)},
        )
        return reversal

    def attach_receipt(self, actor_id: UUID, expense_id: UUID, receipt_uri: str) -> ExpenseModel:
        """Point a pending expense at its stored receipt file."""
        expense = self._store.load_expense(expense_id, for_update=True)
        if expense.approved:
            raise AlreadyApprovedError(str(expense.id))
        expense.has_receipt = True
        expense.receipt_uri = receipt_uri
        expense.updated_by_id = actor_id
        self._store.save_expense(expense)
        self._auditor.record_expense_change(
            expense.id,
            AuditAction.RECEIPT_ATTACHED,
            actor_id,
            receipt_uri=receipt_uri,
        )
        return expense

    def unresolved(self, project_id: UUID) -> list[ExpenseModel]:
        """Pending expenses in the project's open billing period."""
        project = self._store.load_project(project_id)
        return self._store.pending_expenses(project.id, project.open_period_number)

    def unresolved_count(self, project_id: UUID) -> int:
        return len(self.unresolved(project_id))
