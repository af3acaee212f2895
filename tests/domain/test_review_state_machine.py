"""
Tests for the pay application review state machine
(``settlement_kernel.domain.workflow``).

Invariants tested:
- PAY_APPLICATION_TRANSITIONS is the only source of legal edges;
  FINALIZED is terminal.
- Only the reviewer at the cursor may approve or request changes.
- request_changes resets the cursor to 0 from any position.
- The last approval lands in FULLY_REVIEWED with the cursor at len(chain).
"""

from uuid import uuid4

import pytest

from settlement_kernel.domain import workflow
from settlement_kernel.domain.workflow import (
    CONTRACTOR_WRITABLE_STATUSES,
    PAY_APPLICATION_TRANSITIONS,
    PayApplicationStatus,
    ReviewState,
    can_transition,
)
from settlement_kernel.exceptions import (
    EmptyReviewerChainError,
    InvalidTransitionError,
    NotCurrentReviewerError,
)

R1, R2, R3 = uuid4(), uuid4(), uuid4()


def _draft() -> ReviewState:
    return ReviewState(pay_application_id=uuid4(), status=PayApplicationStatus.DRAFT)


def _under_review(chain=(R1, R2)) -> ReviewState:
    return workflow.submit(_draft(), tuple(chain))


class TestTransitionTable:

    def test_every_status_has_an_entry(self):
        for status in PayApplicationStatus:
            assert status in PAY_APPLICATION_TRANSITIONS

    def test_finalized_is_terminal(self):
        assert PAY_APPLICATION_TRANSITIONS[PayApplicationStatus.FINALIZED] == frozenset()

    def test_draft_cannot_skip_to_finalized(self):
        assert not can_transition(PayApplicationStatus.DRAFT, PayApplicationStatus.FINALIZED)

    def test_contractor_writes_only_in_draft_or_changes_requested(self):
        assert CONTRACTOR_WRITABLE_STATUSES == {
            PayApplicationStatus.DRAFT,
            PayApplicationStatus.CHANGES_REQUESTED,
        }


class TestSubmit:

    def test_submit_lands_under_review_at_first_reviewer(self):
        state = _under_review()
        assert state.status is PayApplicationStatus.UNDER_REVIEW
        assert state.current_reviewer_index == 0
        assert state.current_reviewer_id == R1

    def test_submit_from_under_review_rejected(self):
        with pytest.raises(InvalidTransitionError):
            workflow.submit(_under_review(), (R1, R2))

    def test_empty_chain_rejected(self):
        with pytest.raises(EmptyReviewerChainError):
            workflow.validate_reviewer_chain(uuid4(), ())

    def test_duplicate_reviewer_rejected(self):
        with pytest.raises(EmptyReviewerChainError):
            workflow.validate_reviewer_chain(uuid4(), (R1, R1))


class TestApprove:

    def test_out_of_order_approval_rejected(self):
        state = _under_review()
        with pytest.raises(NotCurrentReviewerError) as exc_info:
            workflow.approve(state, R2)
        assert exc_info.value.expected_reviewer_id == str(R1)

    def test_approval_advances_cursor(self):
        state = workflow.approve(_under_review(), R1)
        assert state.status is PayApplicationStatus.UNDER_REVIEW
        assert state.current_reviewer_index == 1
        assert state.current_reviewer_id == R2

    def test_last_approval_fully_reviews(self):
        state = workflow.approve(workflow.approve(_under_review(), R1), R2)
        assert state.status is PayApplicationStatus.FULLY_REVIEWED
        assert state.current_reviewer_index == 2
        assert state.is_fully_reviewed
        assert state.current_reviewer_id is None

    def test_no_one_may_approve_a_fully_reviewed_application(self):
        state = workflow.approve(workflow.approve(_under_review(), R1), R2)
        with pytest.raises(NotCurrentReviewerError):
            workflow.approve(state, R2)

    def test_draft_has_no_current_reviewer(self):
        with pytest.raises(NotCurrentReviewerError):
            workflow.approve(_draft(), R1)


class TestRequestChanges:

    @pytest.mark.parametrize("approvals", [0, 1, 2])
    def test_resets_cursor_from_any_position(self, approvals):
        chain = (R1, R2, R3)
        state = _under_review(chain)
        for reviewer in chain[:approvals]:
            state = workflow.approve(state, reviewer)
        state = workflow.request_changes(state, chain[approvals])
        assert state.status is PayApplicationStatus.CHANGES_REQUESTED
        assert state.current_reviewer_index == 0

    def test_only_current_reviewer_may_request_changes(self):
        with pytest.raises(NotCurrentReviewerError):
            workflow.request_changes(_under_review(), R2)

    def test_resubmission_restarts_chain(self):
        state = workflow.approve(_under_review(), R1)
        state = workflow.request_changes(state, R2)
        state = workflow.submit(state, state.reviewer_chain)
        assert state.current_reviewer_id == R1


class TestFinalize:

    def test_finalize_requires_fully_reviewed(self):
        with pytest.raises(InvalidTransitionError):
            workflow.finalize(_under_review())

    def test_finalize_is_irreversible(self):
        state = workflow.approve(workflow.approve(_under_review(), R1), R2)
        final = workflow.finalize(state)
        assert final.status is PayApplicationStatus.FINALIZED
        with pytest.raises(InvalidTransitionError):
            workflow.finalize(final)
        with pytest.raises(InvalidTransitionError):
            workflow.submit(final, final.reviewer_chain)


class TestReviewStateBounds:

    def test_cursor_beyond_chain_rejected(self):
        with pytest.raises(ValueError):
            ReviewState(
                pay_application_id=uuid4(),
                status=PayApplicationStatus.UNDER_REVIEW,
                reviewer_chain=(R1,),
                current_reviewer_index=2,
            )
