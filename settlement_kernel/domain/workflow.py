"""
Pay application review state machine (``settlement_kernel.domain.workflow``).

Responsibility
--------------
Pure transition functions over primitive review state: a status, an
ordered tuple of reviewer ids and an integer cursor into it.  Reviewers
are plain identifiers, not objects; every transition is a total function
that either returns the next state or raises a typed error.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  ``ReviewWorkflowService`` loads the
persisted row, calls one function here, and writes the result back.

Invariants enforced
-------------------
* ``PAY_APPLICATION_TRANSITIONS`` defines the only legal status edges;
  ``FINALIZED`` has no outgoing edge.
* ``0 <= current_reviewer_index <= len(reviewer_chain)``; the upper bound
  means fully reviewed.
* Only ``reviewer_chain[current_reviewer_index]`` may approve or request
  changes.
* Requesting changes always resets the cursor to 0.

Lifecycle::

    draft --submit--> submitted --> under_review --approve*--> fully_reviewed --finalize--> finalized
                                          |
                                   request_changes
                                          v
                                  changes_requested --submit--> submitted
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from settlement_kernel.exceptions import (
    EmptyReviewerChainError,
    InvalidTransitionError,
    NotCurrentReviewerError,
)


class PayApplicationStatus(str, Enum):
    """Pay application lifecycle states."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    CHANGES_REQUESTED = "changes_requested"
    FULLY_REVIEWED = "fully_reviewed"
    FINALIZED = "finalized"


class ReviewDecision(str, Enum):
    """Decisions a reviewer at the cursor can record."""

    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"


PAY_APPLICATION_TRANSITIONS: dict[PayApplicationStatus, frozenset[PayApplicationStatus]] = {
    PayApplicationStatus.DRAFT: frozenset({PayApplicationStatus.SUBMITTED}),
    PayApplicationStatus.SUBMITTED: frozenset({PayApplicationStatus.UNDER_REVIEW}),
    PayApplicationStatus.UNDER_REVIEW: frozenset({
        PayApplicationStatus.UNDER_REVIEW,
        PayApplicationStatus.FULLY_REVIEWED,
        PayApplicationStatus.CHANGES_REQUESTED,
    }),
    PayApplicationStatus.CHANGES_REQUESTED: frozenset({PayApplicationStatus.SUBMITTED}),
    PayApplicationStatus.FULLY_REVIEWED: frozenset({PayApplicationStatus.FINALIZED}),
    PayApplicationStatus.FINALIZED: frozenset(),
}

# The only states in which the contractor may change ledger content.
CONTRACTOR_WRITABLE_STATUSES: frozenset[PayApplicationStatus] = frozenset({
    PayApplicationStatus.DRAFT,
    PayApplicationStatus.CHANGES_REQUESTED,
})

OPEN_STATUSES: frozenset[PayApplicationStatus] = frozenset(
    s for s in PayApplicationStatus if s is not PayApplicationStatus.FINALIZED
)


def can_transition(
    from_status: PayApplicationStatus,
    to_status: PayApplicationStatus,
) -> bool:
    return to_status in PAY_APPLICATION_TRANSITIONS.get(from_status, frozenset())


@dataclass(frozen=True)
class ReviewState:
    """Primitive review state of one pay application."""

    pay_application_id: UUID
    status: PayApplicationStatus
    reviewer_chain: tuple[UUID, ...] = ()
    current_reviewer_index: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.current_reviewer_index <= len(self.reviewer_chain):
            raise ValueError(
                f"current_reviewer_index {self.current_reviewer_index} outside "
                f"[0, {len(self.reviewer_chain)}]"
            )

    @property
    def current_reviewer_id(self) -> UUID | None:
        """Reviewer expected to act next, or None outside active review."""
        if self.status is not PayApplicationStatus.UNDER_REVIEW:
            return None
        if self.current_reviewer_index >= len(self.reviewer_chain):
            return None
        return self.reviewer_chain[self.current_reviewer_index]

    @property
    def is_fully_reviewed(self) -> bool:
        return self.current_reviewer_index == len(self.reviewer_chain)

    def _move(self, to_status: PayApplicationStatus, action: str, **changes) -> ReviewState:
        if not can_transition(self.status, to_status):
            raise InvalidTransitionError(
                str(self.pay_application_id), self.status.value, action,
            )
        return replace(self, status=to_status, **changes)


def validate_reviewer_chain(project_id: UUID, chain: tuple[UUID, ...]) -> None:
    """A chain must list at least one reviewer and no reviewer twice."""
    if not chain:
        raise EmptyReviewerChainError(str(project_id), "no reviewers assigned")
    if len(set(chain)) != len(chain):
        raise EmptyReviewerChainError(str(project_id), "reviewer listed more than once")


def submit(state: ReviewState, reviewer_chain: tuple[UUID, ...]) -> ReviewState:
    """
    Submit (or resubmit) for review.

    Passes through SUBMITTED and lands in UNDER_REVIEW with the cursor on
    the first reviewer.
    """
    submitted = state._move(
        PayApplicationStatus.SUBMITTED,
        "submit",
        reviewer_chain=reviewer_chain,
        current_reviewer_index=0,
    )
    return submitted._move(PayApplicationStatus.UNDER_REVIEW, "submit")


def _require_current_reviewer(state: ReviewState, reviewer_id: UUID) -> None:
    expected = state.current_reviewer_id
    if expected is None or expected != reviewer_id:
        raise NotCurrentReviewerError(
            str(state.pay_application_id),
            str(reviewer_id),
            str(expected) if expected is not None else None,
        )


def approve(state: ReviewState, reviewer_id: UUID) -> ReviewState:
    """Advance the cursor; the last approval moves to FULLY_REVIEWED."""
    _require_current_reviewer(state, reviewer_id)
    next_index = state.current_reviewer_index + 1
    if next_index == len(state.reviewer_chain):
        return state._move(
            PayApplicationStatus.FULLY_REVIEWED,
            "approve",
            current_reviewer_index=next_index,
        )
    return state._move(
        PayApplicationStatus.UNDER_REVIEW,
        "approve",
        current_reviewer_index=next_index,
    )


def request_changes(state: ReviewState, reviewer_id: UUID) -> ReviewState:
    """Send back to the contractor; the whole chain must review again."""
    _require_current_reviewer(state, reviewer_id)
    return state._move(
        PayApplicationStatus.CHANGES_REQUESTED,
        "request_changes",
        current_reviewer_index=0,
    )


def finalize(state: ReviewState) -> ReviewState:
    """The single irreversible transition."""
    return state._move(PayApplicationStatus.FINALIZED, "finalize")
