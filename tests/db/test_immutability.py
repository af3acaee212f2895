"""
Tests for ORM-level immutability enforcement (``settlement_kernel.db.immutability``).

Records that must never change once written:
- approved expenses (no field edits, no delete)
- submission snapshot lines, review decisions, reviewer slots
- finalized pay applications
- audit events

Each test writes through the engine first, then tampers through the ORM
and expects the flush to be refused.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from settlement_kernel.db.immutability import register_immutability_listeners
from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.models.audit_event import AuditEvent
from settlement_kernel.models.expense import ExpenseModel
from settlement_kernel.models.pay_application import (
    PayApplicationModel,
    ReviewDecisionModel,
    ReviewerSlotModel,
    SnapshotLineModel,
)


class TestApprovedExpense:

    def test_amount_edit_refused(self, session, line_item, approved_expense):
        expense = session.get(ExpenseModel, approved_expense(line_item.id, "100").id)
        expense.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Expense"

    def test_unapproval_refused(self, session, line_item, approved_expense):
        expense = session.get(ExpenseModel, approved_expense(line_item.id, "100").id)
        expense.approved = False
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_refused(self, session, line_item, approved_expense):
        expense = session.get(ExpenseModel, approved_expense(line_item.id, "100").id)
        session.delete(expense)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_audit_metadata_may_change(self, session, director, line_item, approved_expense):
        expense = session.get(ExpenseModel, approved_expense(line_item.id, "100").id)
        expense.updated_by_id = director.id
        session.flush()


class TestReviewRecords:

    @pytest.fixture
    def final_app(self, session, line_item, approved_expense, review_cycle, project):
        approved_expense(line_item.id, "2500")
        final = review_cycle(project.id)
        return session.get(PayApplicationModel, final.id)

    def test_snapshot_line_edit_refused(self, session, final_app):
        line = session.execute(
            select(SnapshotLineModel).where(SnapshotLineModel.pay_application_id == final_app.id)
        ).scalars().first()
        line.this_period = Decimal("0")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_review_decision_edit_refused(self, session, final_app):
        decision = session.execute(
            select(ReviewDecisionModel).where(ReviewDecisionModel.pay_application_id == final_app.id)
        ).scalars().first()
        decision.note = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_reviewer_slot_delete_refused(self, session, final_app):
        slot = session.execute(
            select(ReviewerSlotModel).where(ReviewerSlotModel.pay_application_id == final_app.id)
        ).scalars().first()
        session.delete(slot)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_finalized_application_edit_refused(self, session, final_app):
        final_app.certified_amount = Decimal("999999")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_finalized_application_delete_refused(self, session, final_app):
        session.delete(final_app)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestAuditEvents:

    def test_audit_event_edit_refused(self, session, line_item):
        event = session.execute(select(AuditEvent).order_by(AuditEvent.seq)).scalars().first()
        event.action = "tampered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestRegistration:

    def test_registration_is_idempotent(self, session, line_item, approved_expense):
        register_immutability_listeners()
        register_immutability_listeners()
        expense = session.get(ExpenseModel, approved_expense(line_item.id, "100").id)
        expense.category = "other"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
