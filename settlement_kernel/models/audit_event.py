"""
Module: settlement_kernel.models.audit_event
Responsibility: ORM persistence for the tamper-evident audit hash chain.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Audit records are append-only; no UPDATE or DELETE (ORM listener).
    - Hash chain integrity: hash = H(entity_type | entity_id | action |
      payload_hash | prev_hash).  Validated by AuditorService.
    - seq is monotonically increasing, allocated by SequenceService.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when chain validation detects a hash mismatch.

Audit relevance:
    AuditEvent IS the audit trail.  Every ledger mutation and every review
    transition produces one row, so a pay application's full history can
    be replayed from ``AuditorService.get_trace``.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Project setup
    PROJECT_CREATED = "project_created"
    LINE_ITEM_CREATED = "line_item_created"

    # Schedule of values
    LINE_ITEM_RECOMPUTED = "line_item_recomputed"
    MATERIALS_STORED_SET = "materials_stored_set"
    LINE_ITEM_ROLLED_FORWARD = "line_item_rolled_forward"
    PERIOD_OPENED = "period_opened"

    # Expense ledger
    EXPENSE_ADDED = "expense_added"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REMOVED = "expense_removed"
    EXPENSE_REVERSED = "expense_reversed"
    RECEIPT_ATTACHED = "receipt_attached"

    # Review workflow
    PAY_APPLICATION_CREATED = "pay_application_created"
    PAY_APPLICATION_SUBMITTED = "pay_application_submitted"
    REVIEW_APPROVED = "review_approved"
    REVIEW_CHANGES_REQUESTED = "review_changes_requested"
    PAY_APPLICATION_FINALIZED = "pay_application_finalized"


class AuditEvent(Base):
    """
    Audit event with hash chain for tamper evidence.

    Guarantees:
        - seq is globally unique and monotonically increasing.
        - prev_hash is None only for the genesis event.
    """

    __tablename__ = "audit_events"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_seq", "seq"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditEvent {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None
