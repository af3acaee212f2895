"""
Data Transfer Objects (``settlement_kernel.domain.dtos``).

Frozen value objects returned by the engine and selectors.  ORM rows never
leave the service layer; callers receive these instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from settlement_kernel.domain.ledger_math import LineItemFigures
from settlement_kernel.domain.workflow import PayApplicationStatus, ReviewDecision


@dataclass(frozen=True)
class ProjectInfo:
    id: UUID
    name: str
    organization_id: UUID
    director_id: UUID
    retainage_percent: Decimal
    open_period_number: int
    open_period_started_on: date
    reviewer_ids: tuple[UUID, ...] = ()
    contractor_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class LineItemInfo:
    id: UUID
    project_id: UUID
    version: int
    figures: LineItemFigures

    @property
    def item_number(self) -> int:
        return self.figures.item_number


@dataclass(frozen=True)
class ExpenseInfo:
    id: UUID
    line_item_id: UUID
    amount: Decimal
    category: str
    incurred_on: date
    billing_period: int
    approved: bool
    has_receipt: bool
    description: str = ""
    comment: str = ""
    receipt_uri: str | None = None
    reverses_expense_id: UUID | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None

    @property
    def is_reversal(self) -> bool:
        return self.reverses_expense_id is not None


@dataclass(frozen=True)
class ReviewDecisionInfo:
    submission_number: int
    position: int
    reviewer_id: UUID
    decision: ReviewDecision
    note: str
    decided_at: datetime


@dataclass(frozen=True)
class PayApplicationInfo:
    id: UUID
    project_id: UUID
    contractor_id: UUID
    application_number: int
    billing_period: int
    status: PayApplicationStatus
    reviewer_chain: tuple[UUID, ...]
    current_reviewer_index: int
    submission_number: int
    version: int
    submitted_at: datetime | None = None
    finalized_at: datetime | None = None
    finalized_by_id: UUID | None = None
    certified_amount: Decimal | None = None
    decisions: tuple[ReviewDecisionInfo, ...] = field(default_factory=tuple)

    @property
    def current_reviewer_id(self) -> UUID | None:
        if self.status is not PayApplicationStatus.UNDER_REVIEW:
            return None
        if self.current_reviewer_index >= len(self.reviewer_chain):
            return None
        return self.reviewer_chain[self.current_reviewer_index]
