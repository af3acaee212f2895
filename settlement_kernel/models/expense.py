"""
Module: settlement_kernel.models.expense
Responsibility: ORM persistence for contractor cost entries against a line item.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount > 0 for ordinary entries; reversal entries carry a negative
      amount and point at the expense they reverse.
    - At most one reversal per expense (unique reverses_expense_id).
    - Once ``approved`` is True the row is frozen (ORM listener in
      db/immutability.py): no field changes, no delete.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of an approved expense.
    - IntegrityError on a second reversal (services raise
      ExpenseAlreadyReversedError first).
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, UUIDString


class ExpenseModel(TrackedBase):
    """
    A single cost entry billed against a schedule-of-values line.

    Created pending.  Only an explicit reviewer action flips ``approved``;
    rejection is deletion of the pending row.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        Index("idx_expense_line_item", "line_item_id"),
        Index("idx_expense_line_period", "line_item_id", "billing_period", "approved"),
        CheckConstraint(
            "(reverses_expense_id IS NULL AND amount > 0) "
            "OR (reverses_expense_id IS NOT NULL AND amount < 0)",
            name="ck_expense_amount_sign",
        ),
    )

    line_item_id: Mapped[UUID] = mapped_column(ForeignKey("line_items.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    incurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    billing_period: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    comment: Mapped[str] = mapped_column(Text, nullable=False, default="")

    approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    has_receipt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    receipt_uri: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    reverses_expense_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("expenses.id"),
        nullable=True,
        unique=True,
    )

    line_item: Mapped["LineItemModel"] = relationship("LineItemModel")  # noqa: F821

    @property
    def is_reversal(self) -> bool:
        return self.reverses_expense_id is not None

    def to_dto(self):
        from settlement_kernel.domain.dtos import ExpenseInfo

        return ExpenseInfo(
            id=self.id,
            line_item_id=self.line_item_id,
            amount=self.amount,
            category=self.category,
            incurred_on=self.incurred_on,
            billing_period=self.billing_period,
            approved=self.approved,
            has_receipt=self.has_receipt,
            description=self.description,
            comment=self.comment,
            receipt_uri=self.receipt_uri,
            reverses_expense_id=self.reverses_expense_id,
            approved_by_id=self.approved_by_id,
            approved_at=self.approved_at,
        )

    def __repr__(self) -> str:
        state = "approved" if self.approved else "pending"
        return f"<ExpenseModel {self.amount} {self.category} {state}>"
