"""
End-to-end billing scenarios through the public SettlementEngine surface.

A: a line billed to exactly its scheduled value across two periods.
B: an over-schedule approval is refused and leaves everything untouched.
C: sequential review, finalization and roll-forward.
D: changes requested on a resubmission restart the whole chain.
"""

from datetime import date
from decimal import Decimal

import pytest

from settlement_kernel.domain.workflow import PayApplicationStatus
from settlement_kernel.exceptions import NotCurrentReviewerError, OverScheduleError
from settlement_kernel.selectors.project_selector import ProjectSelector

INCURRED = date(2024, 3, 4)


@pytest.fixture
def billed_to_twenty(settlement_engine, contractor, line_item, approved_expense, review_cycle, project):
    """The default 25000 line with 20000 certified in period 1."""
    approved_expense(line_item.id, "20000")
    review_cycle(project.id)
    rolled = settlement_engine.line_item(contractor, line_item.id)
    assert rolled.figures.from_previous_application == Decimal("20000")
    assert rolled.figures.this_period == Decimal("0")
    return line_item


class TestScenarioCompletion:

    def test_line_reaches_full_completion(self, settlement_engine, contractor, billed_to_twenty, approved_expense):
        approved_expense(billed_to_twenty.id, "3000")
        approved_expense(billed_to_twenty.id, "2000")

        figures = settlement_engine.line_item(contractor, billed_to_twenty.id).figures
        assert figures.this_period == Decimal("5000")
        assert figures.total_completed_to_date == Decimal("25000")
        assert figures.percent_complete == Decimal("100.00")
        assert figures.balance_to_finish == Decimal("0")


class TestScenarioOverSchedule:

    def test_over_schedule_approval_refused(
        self, session, settlement_engine, contractor, reviewer_one, billed_to_twenty,
    ):
        before = settlement_engine.line_item(contractor, billed_to_twenty.id)
        expense = settlement_engine.add_expense(contractor, billed_to_twenty.id, "10000", "labor", INCURRED)

        with pytest.raises(OverScheduleError) as exc_info:
            settlement_engine.approve_expense(reviewer_one, expense.id)
        assert Decimal(exc_info.value.scheduled_value) == Decimal("25000")
        assert Decimal(exc_info.value.attempted_total) == Decimal("30000")

        after = settlement_engine.line_item(contractor, billed_to_twenty.id)
        assert after == before
        stored = [e for e in ProjectSelector(session).expenses(billed_to_twenty.id) if e.id == expense.id]
        assert stored[0].approved is False


class TestScenarioSequentialReview:

    def test_review_finalize_and_roll_forward(
        self, settlement_engine, contractor, director, reviewer_one, reviewer_two,
        line_item, approved_expense, project,
    ):
        approved_expense(line_item.id, "6000")
        draft = settlement_engine.create_draft(contractor, project.id)
        settlement_engine.submit(contractor, draft.id)

        with pytest.raises(NotCurrentReviewerError):
            settlement_engine.approve(reviewer_two, draft.id)

        after_r1 = settlement_engine.approve(reviewer_one, draft.id)
        assert after_r1.current_reviewer_index == 1

        after_r2 = settlement_engine.approve(reviewer_two, draft.id)
        assert after_r2.status is PayApplicationStatus.FULLY_REVIEWED

        final = settlement_engine.finalize(director, draft.id)
        assert final.status is PayApplicationStatus.FINALIZED

        rolled = settlement_engine.line_item(contractor, line_item.id).figures
        assert rolled.from_previous_application == Decimal("6000")
        assert rolled.this_period == Decimal("0")
        assert rolled.total_completed_to_date == Decimal("6000")
        assert settlement_engine.auditor.validate_chain() is True


class TestScenarioChangesOnResubmission:

    @pytest.fixture
    def resubmitted(self, settlement_engine, contractor, reviewer_one, reviewer_two, line_item, approved_expense, project):
        approved_expense(line_item.id, "1200")
        draft = settlement_engine.create_draft(contractor, project.id)
        settlement_engine.submit(contractor, draft.id)
        settlement_engine.approve(reviewer_one, draft.id)
        settlement_engine.request_changes(reviewer_two, draft.id, note="attach lien waiver")
        return settlement_engine.submit(contractor, draft.id)

    def test_changes_at_first_step_reset_chain(self, settlement_engine, reviewer_one, reviewer_two, resubmitted):
        assert resubmitted.submission_number == 2
        assert resubmitted.current_reviewer_id == reviewer_one.id

        back = settlement_engine.request_changes(reviewer_one, resubmitted.id, note="wrong period")
        assert back.status is PayApplicationStatus.CHANGES_REQUESTED
        assert back.current_reviewer_index == 0

        for reviewer in (reviewer_one, reviewer_two):
            with pytest.raises(NotCurrentReviewerError):
                settlement_engine.approve(reviewer, resubmitted.id)

    def test_changes_after_first_approval_reset_chain(
        self, settlement_engine, contractor, reviewer_one, reviewer_two, resubmitted,
    ):
        settlement_engine.approve(reviewer_one, resubmitted.id)
        back = settlement_engine.request_changes(reviewer_two, resubmitted.id)
        assert back.current_reviewer_index == 0

        again = settlement_engine.submit(contractor, resubmitted.id)
        assert again.submission_number == 3
        assert again.current_reviewer_id == reviewer_one.id
        with pytest.raises(NotCurrentReviewerError):
            settlement_engine.approve(reviewer_two, resubmitted.id)
