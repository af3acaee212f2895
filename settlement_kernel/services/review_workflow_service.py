"""
ReviewWorkflowService -- pay application lifecycle.

Responsibility:
    Persists the transitions computed by ``domain.workflow``: draft
    creation, submission (with snapshot), sequential reviewer approval,
    change requests and finalization (with roll-forward).

Architecture position:
    Kernel > Services.  Loads the pay application row ``FOR UPDATE``,
    calls exactly one pure transition, and writes the result back through
    SettlementStore.

Invariants enforced:
    - One open (non-finalized) pay application per project.
    - The reviewer chain is copied from the project roster at the first
      submission and never changes afterwards.
    - Each submission writes a new, immutable snapshot set.
    - Only ``chain[current_reviewer_index]`` may decide; a change request
      sends the cursor back to 0.
    - Finalization rolls every line item forward and advances the
      project's billing period exactly once.

Failure modes:
    - InvalidTransitionError, UnresolvedExpensesError,
      EmptyReviewerChainError, NotCurrentReviewerError,
      OpenApplicationExistsError, ConflictError.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain import workflow
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.ledger_math import aggregate
from settlement_kernel.domain.policy import LedgerPolicy
from settlement_kernel.domain.values import ZERO
from settlement_kernel.domain.workflow import (
    PayApplicationStatus,
    ReviewDecision,
    ReviewState,
    can_transition,
)
from settlement_kernel.exceptions import (
    InvalidTransitionError,
    OpenApplicationExistsError,
    UnresolvedExpensesError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_event import AuditAction
from settlement_kernel.models.pay_application import (
    PayApplicationModel,
    ReviewDecisionModel,
    ReviewerSlotModel,
    SnapshotLineModel,
)
from settlement_kernel.models.project import ProjectModel
from settlement_kernel.services.auditor_service import AuditorService
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.sov_ledger_service import SovLedgerService
from settlement_kernel.services.store import SettlementStore

logger = get_logger("services.review_workflow")


class ReviewWorkflowService(BaseService):
    """Write side of the pay application review workflow."""

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

    def create_draft(
        self,
        actor_id: UUID,
        project_id: UUID,
        contractor_id: UUID,
    ) -> PayApplicationModel:
        """Open a new draft for the project's current billing period."""
        project = self._store.load_project(project_id, for_update=True)
        existing = self._store.open_pay_application(project.id, for_update=True)
        if existing is not None:
            raise OpenApplicationExistsError(str(project.id), str(existing.id))

        project.application_count += 1
        pay_app = PayApplicationModel(
            project_id=project.id,
            contractor_id=contractor_id,
            application_number=project.application_count,
            billing_period=project.open_period_number,
            status=PayApplicationStatus.DRAFT.value,
            current_reviewer_index=0,
            submission_number=0,
            created_by_id=actor_id,
        )
        self._store.save_project(project)
        self._store.save_pay_application(pay_app)
        self._auditor.record_review_transition(
            pay_app.id,
            AuditAction.PAY_APPLICATION_CREATED,
            actor_id,
            from_status="",
            to_status=pay_app.status,
            application_number=pay_app.application_number,
            billing_period=pay_app.billing_period,
        )
        logger.info(
            "pay_application_created",
            extra={
                "pay_application_id": str(pay_app.id),
                "application_number": pay_app.application_number,
            },
        )
        return pay_app

    def submit(
        self,
        actor_id: UUID,
        pay_application_id: UUID,
        expected_version: int | None = None,
    ) -> PayApplicationModel:
        """
        Submit or resubmit for review.

        Preconditions checked in order: legal transition, no pending
        expenses, a valid reviewer chain.  Nothing is written until all
        three hold.
        """
        pay_app = self._store.load_pay_application(
            pay_application_id, for_update=True, expected_version=expected_version,
        )
        from_status = PayApplicationStatus(pay_app.status)
        if not can_transition(from_status, PayApplicationStatus.SUBMITTED):
            raise InvalidTransitionError(str(pay_app.id), from_status.value, "submit")

        project = self._store.load_project(pay_app.project_id)
        pending = self._store.pending_expenses(project.id, project.open_period_number)
        if pending:
            raise UnresolvedExpensesError(str(pay_app.id), [str(e.id) for e in pending])

        first_submission = not pay_app.reviewer_slots
        chain = (
            tuple(r.reviewer_id for r in project.reviewers)
            if first_submission
            else pay_app.reviewer_chain
        )
        workflow.validate_reviewer_chain(project.id, chain)
        new_state = workflow.submit(pay_app.to_review_state(), chain)

        if first_submission:
            for position, reviewer_id in enumerate(chain):
                self._store.add(ReviewerSlotModel(
                    pay_application=pay_app,
                    position=position,
                    reviewer_id=reviewer_id,
                    created_by_id=actor_id,
                ))

        pay_app.submission_number += 1
        line_count = self._write_snapshot(actor_id, pay_app, project)

        previous = self._store.last_finalized_application(project)
        pay_app.snapshot_retainage_percent = project.retainage_percent
        pay_app.snapshot_previous_certificates = (
            previous.certified_amount if previous is not None else ZERO
        )
        pay_app.submitted_at = self.clock.now()
        self._apply(pay_app, new_state, actor_id)
        self._store.save_pay_application(pay_app)

        self._auditor.record_review_transition(
            pay_app.id,
            AuditAction.PAY_APPLICATION_SUBMITTED,
            actor_id,
            from_status=from_status.value,
            to_status=pay_app.status,
            submission_number=pay_app.submission_number,
            reviewer_chain=list(chain),
            line_count=line_count,
        )
        logger.info(
            "pay_application_submitted",
            extra={
                "submission_number": pay_app.submission_number,
                "reviewer_count": len(chain),
                "line_count": line_count,
            },
        )
        return pay_app

    def _write_snapshot(
        self,
        actor_id: UUID,
        pay_app: PayApplicationModel,
        project: ProjectModel,
    ) -> int:
        line_items = self._store.line_items(project.id)
        for li in line_items:
            self._store.add(SnapshotLineModel(
                pay_application=pay_app,
                submission_number=pay_app.submission_number,
                line_item_id=li.id,
                item_number=li.item_number,
                description=li.description,
                scheduled_value=li.scheduled_value,
                from_previous_application=li.from_previous_application,
                this_period=li.this_period,
                materials_stored=li.materials_stored,
                created_by_id=actor_id,
            ))
        return len(line_items)

    def approve(
        self,
        actor_id: UUID,
        pay_application_id: UUID,
        reviewer_id: UUID,
        note: str = "",
        expected_version: int | None = None,
    ) -> PayApplicationModel:
        """Record the current reviewer's approval and advance the cursor."""
        return self._decide(
            actor_id, pay_application_id, reviewer_id, note,
            ReviewDecision.APPROVED, expected_version,
        )

    def request_changes(
        self,
        actor_id: UUID,
        pay_application_id: UUID,
        reviewer_id: UUID,
        note: str = "",
        expected_version: int | None = None,
    ) -> PayApplicationModel:
        """Send the application back to the contractor; the chain restarts."""
        return self._decide(
            actor_id, pay_application_id, reviewer_id, note,
            ReviewDecision.CHANGES_REQUESTED, expected_version,
        )

    def _decide(
        self,
        actor_id: UUID,
        pay_application_id: UUID,
        reviewer_id: UUID,
        note: str,
        decision: ReviewDecision,
        expected_version: int | None,
    ) -> PayApplicationModel:
        pay_app = self._store.load_pay_application(
            pay_application_id, for_update=True, expected_version=expected_version,
        )
        state = pay_app.to_review_state()
        if decision is ReviewDecision.APPROVED:
            new_state = workflow.approve(state, reviewer_id)
            action = AuditAction.REVIEW_APPROVED
        else:
            new_state = workflow.request_changes(state, reviewer_id)
            action = AuditAction.REVIEW_CHANGES_REQUESTED

        self._store.add(ReviewDecisionModel(
            pay_application=pay_app,
            submission_number=pay_app.submission_number,
            position=state.current_reviewer_index,
            reviewer_id=reviewer_id,
            decision=decision.value,
            note=note,
            decided_at=self.clock.now(),
            created_by_id=actor_id,
        ))
        self._apply(pay_app, new_state, actor_id)
        self._store.save_pay_application(pay_app)

        self._auditor.record_review_transition(
            pay_app.id,
            action,
            actor_id,
            from_status=state.status.value,
            to_status=new_state.status.value,
            position=state.current_reviewer_index,
            next_index=new_state.current_reviewer_index,
            note=note,
        )
        logger.info(
            "review_decision_recorded",
            extra={
                "decision": decision.value,
                "position": state.current_reviewer_index,
                "status": new_state.status.value,
            },
        )
        return pay_app

    def finalize(
        self,
        actor_id: UUID,
        pay_application_id: UUID,
        expected_version: int | None = None,
    ) -> PayApplicationModel:
        """
        Irreversibly finalize a fully reviewed application.

        Rolls every line item forward, opens the next billing period and
        records the certified amount (total earned less retainage of the
        latest snapshot).
        """
        pay_app = self._store.load_pay_application(
            pay_application_id, for_update=True, expected_version=expected_version,
        )
        state = pay_app.to_review_state()
        new_state = workflow.finalize(state)

        retainage_percent = pay_app.snapshot_retainage_percent
        totals = aggregate(
            (line.to_figures(retainage_percent, self.policy)
             for line in pay_app.lines_for_submission(pay_app.submission_number)),
            self.policy,
        )

        for line_item in self._store.line_items(pay_app.project_id):
            self._sov.roll_forward(actor_id, line_item.id, pay_app)
        self._sov.open_next_period(actor_id, pay_app.project_id, pay_app.id)

        pay_app.certified_amount = totals.total_earned_less_retainage
        pay_app.finalized_at = self.clock.now()
        pay_app.finalized_by_id = actor_id
        self._apply(pay_app, new_state, actor_id)
        self._store.save_pay_application(pay_app)

        self._auditor.record_review_transition(
            pay_app.id,
            AuditAction.PAY_APPLICATION_FINALIZED,
            actor_id,
            from_status=state.status.value,
            to_status=new_state.status.value,
            certified_amount=totals.total_earned_less_retainage,
            submission_number=pay_app.submission_number,
        )
        logger.info(
            "pay_application_finalized",
            extra={"certified_amount": str(totals.total_earned_less_retainage)},
        )
        return pay_app

    @staticmethod
    def _apply(pay_app: PayApplicationModel, new_state: ReviewState, actor_id: UUID) -> None:
        pay_app.status = new_state.status.value
        pay_app.current_reviewer_index = new_state.current_reviewer_index
        pay_app.updated_by_id = actor_id
