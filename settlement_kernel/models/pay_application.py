"""
Module: settlement_kernel.models.pay_application
Responsibility: ORM persistence for pay applications, their fixed reviewer
    chain, the per-submission snapshot lines and the review decisions.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values are limited by a check constraint; legal transitions
      are enforced by domain/workflow.py.
    - 0 <= current_reviewer_index (the upper bound, the chain length, is
      checked by ReviewState on every transition).
    - Reviewer slots, snapshot lines and review decisions are append-only
      (ORM listeners in db/immutability.py).  A resubmission writes a new
      snapshot set under the next submission_number.
    - A finalized pay application is frozen.
    - PayApplicationModel carries a version column used as an optimistic
      compare-and-swap on every UPDATE.

Failure modes:
    - ImmutabilityViolationError on UPDATE/DELETE of a frozen row.
    - StaleDataError on a concurrent version bump.
    - IntegrityError on a duplicate (project_id, application_number).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, UUIDString


class PayApplicationModel(TrackedBase):
    """
    One contractor billing submission against a project's schedule of values.

    Guarantees:
        - ``reviewer_slots`` is written once, at the first submission.
        - ``submission_number`` is 0 while a draft and increments on every
          submit; snapshot lines and decisions are keyed by it.
        - ``snapshot_*`` header figures are frozen at submit time.
    """

    __tablename__ = "pay_applications"

    __table_args__ = (
        UniqueConstraint("project_id", "application_number", name="uq_pay_application_number"),
        CheckConstraint(
            "status IN ('draft', 'submitted', 'under_review', "
            "'changes_requested', 'fully_reviewed', 'finalized')",
            name="ck_pay_application_valid_status",
        ),
        CheckConstraint(
            "current_reviewer_index >= 0",
            name="ck_pay_application_cursor_non_negative",
        ),
        Index("idx_pay_application_project_status", "project_id", "status"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    contractor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    application_number: Mapped[int] = mapped_column(Integer, nullable=False)
    billing_period: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    current_reviewer_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    submission_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_at: Mapped[datetime | None] = mapped_column(nullable=True)
    finalized_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    snapshot_retainage_percent: Mapped[Decimal | None] = mapped_column(nullable=True)
    snapshot_previous_certificates: Mapped[Decimal | None] = mapped_column(nullable=True)
    certified_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    reviewer_slots: Mapped[list[ReviewerSlotModel]] = relationship(
        "ReviewerSlotModel",
        back_populates="pay_application",
        order_by="ReviewerSlotModel.position",
        lazy="selectin",
    )

    snapshot_lines: Mapped[list[SnapshotLineModel]] = relationship(
        "SnapshotLineModel",
        back_populates="pay_application",
        order_by="SnapshotLineModel.item_number",
        lazy="selectin",
    )

    decisions: Mapped[list[ReviewDecisionModel]] = relationship(
        "ReviewDecisionModel",
        back_populates="pay_application",
        order_by="ReviewDecisionModel.decided_at",
        lazy="selectin",
    )

    @property
    def reviewer_chain(self) -> tuple[UUID, ...]:
        return tuple(slot.reviewer_id for slot in self.reviewer_slots)

    def lines_for_submission(self, submission_number: int) -> list[SnapshotLineModel]:
        return [
            line for line in self.snapshot_lines
            if line.submission_number == submission_number
        ]

    def to_review_state(self):
        from settlement_kernel.domain.workflow import PayApplicationStatus, ReviewState

        return ReviewState(
            pay_application_id=self.id,
            status=PayApplicationStatus(self.status),
            reviewer_chain=self.reviewer_chain,
            current_reviewer_index=self.current_reviewer_index,
        )

    def to_dto(self):
        """Convert ORM model to frozen domain DTO."""
        from settlement_kernel.domain.dtos import PayApplicationInfo
        from settlement_kernel.domain.workflow import PayApplicationStatus

        return PayApplicationInfo(
            id=self.id,
            project_id=self.project_id,
            contractor_id=self.contractor_id,
            application_number=self.application_number,
            billing_period=self.billing_period,
            status=PayApplicationStatus(self.status),
            reviewer_chain=self.reviewer_chain,
            current_reviewer_index=self.current_reviewer_index,
            submission_number=self.submission_number,
            version=self.version,
            submitted_at=self.submitted_at,
            finalized_at=self.finalized_at,
            finalized_by_id=self.finalized_by_id,
            certified_amount=self.certified_amount,
            decisions=tuple(d.to_dto() for d in self.decisions),
        )

    def __repr__(self) -> str:
        return (
            f"<PayApplicationModel #{self.application_number} "
            f"status={self.status} cursor={self.current_reviewer_index}>"
        )


class ReviewerSlotModel(TrackedBase):
    """One fixed position in a pay application's reviewer chain."""

    __tablename__ = "pay_application_reviewers"

    __table_args__ = (
        UniqueConstraint("pay_application_id", "position", name="uq_reviewer_slot_position"),
        UniqueConstraint("pay_application_id", "reviewer_id", name="uq_reviewer_slot_reviewer"),
    )

    pay_application_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_applications.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    pay_application: Mapped[PayApplicationModel] = relationship(
        "PayApplicationModel", back_populates="reviewer_slots",
    )


class SnapshotLineModel(TrackedBase):
    """
    Stored components of one line item, frozen at a submission.

    Derived figures are recomputed from these by domain.ledger_math, the
    same way live line items are.
    """

    __tablename__ = "pay_application_snapshot_lines"

    __table_args__ = (
        UniqueConstraint(
            "pay_application_id", "submission_number", "line_item_id",
            name="uq_snapshot_line",
        ),
        Index("idx_snapshot_application_submission", "pay_application_id", "submission_number"),
    )

    pay_application_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_applications.id"), nullable=False,
    )
    submission_number: Mapped[int] = mapped_column(Integer, nullable=False)
    line_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    item_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    scheduled_value: Mapped[Decimal] = mapped_column(nullable=False)
    from_previous_application: Mapped[Decimal] = mapped_column(nullable=False)
    this_period: Mapped[Decimal] = mapped_column(nullable=False)
    materials_stored: Mapped[Decimal] = mapped_column(nullable=False)

    pay_application: Mapped[PayApplicationModel] = relationship(
        "PayApplicationModel", back_populates="snapshot_lines",
    )

    def to_figures(self, retainage_percent: Decimal, policy=None):
        from settlement_kernel.domain.ledger_math import compute_figures
        from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY

        return compute_figures(
            item_number=self.item_number,
            description=self.description,
            scheduled_value=self.scheduled_value,
            from_previous_application=self.from_previous_application,
            this_period=self.this_period,
            materials_stored=self.materials_stored,
            retainage_percent=retainage_percent,
            policy=policy or DEFAULT_LEDGER_POLICY,
        )


class ReviewDecisionModel(TrackedBase):
    """Append-only record of one reviewer decision."""

    __tablename__ = "pay_application_decisions"

    __table_args__ = (
        UniqueConstraint(
            "pay_application_id", "submission_number", "position",
            name="uq_decision_per_position",
        ),
        CheckConstraint(
            "decision IN ('approved', 'changes_requested')",
            name="ck_decision_valid",
        ),
    )

    pay_application_id: Mapped[UUID] = mapped_column(
        ForeignKey("pay_applications.id"), nullable=False,
    )
    submission_number: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    decision: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    decided_at: Mapped[datetime] = mapped_column(nullable=False)

    pay_application: Mapped[PayApplicationModel] = relationship(
        "PayApplicationModel", back_populates="decisions",
    )

    def to_dto(self):
        from settlement_kernel.domain.dtos import ReviewDecisionInfo
        from settlement_kernel.domain.workflow import ReviewDecision

        return ReviewDecisionInfo(
            submission_number=self.submission_number,
            position=self.position,
            reviewer_id=self.reviewer_id,
            decision=ReviewDecision(self.decision),
            note=self.note,
            decided_at=self.decided_at,
        )
