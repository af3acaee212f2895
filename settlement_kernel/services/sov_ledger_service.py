"""
SovLedgerService -- schedule-of-values mutations.

Responsibility:
    Creates line items, keeps ``this_period`` reconciled with approved
    expenses, records contractor-declared stored materials and rolls
    totals forward when a pay application is finalized.  All arithmetic
    is delegated to ``domain.ledger_math``.

Architecture position:
    Kernel > Services.  Called by ExpenseLedgerService, ReviewWorkflowService
    and the SettlementEngine facade.

Invariants enforced:
    - previous + this period + stored <= scheduled value after every
      mutation (``check_line_totals`` raises, never clamps).
    - this_period == sum of approved expense amounts in the open period.
    - Roll-forward is idempotent per (line item, pay application) via
      ``last_rolled_application_id``, touches only lines in the
      application's final snapshot, and never runs for an application
      once a later period has opened.  The project period advances once
      per finalized application via ``last_finalized_application_id``.

Failure modes:
    - InvalidAmountError, DuplicateItemNumberError on bad input.
    - OverScheduleError / NegativeCompletionError on invariant breach.
    - ConflictError on a stale ``expected_version``.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.ledger_math import (
    LineItemFigures,
    ProjectTotals,
    aggregate,
    check_line_totals,
    roll_forward_totals,
    sum_this_period,
)
from settlement_kernel.domain.policy import LedgerPolicy
from settlement_kernel.domain.values import STORAGE_QUANTUM, ZERO, to_decimal
from settlement_kernel.exceptions import (
    ApplicationProjectMismatchError,
    DuplicateItemNumberError,
    InvalidAmountError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_event import AuditAction
from settlement_kernel.models.pay_application import PayApplicationModel
from settlement_kernel.models.project import (
    LineItemModel,
    ProjectContractorModel,
    ProjectModel,
    ProjectReviewerModel,
)
from settlement_kernel.services.auditor_service import AuditorService
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.store import SettlementStore

logger = get_logger("services.sov_ledger")


def parse_amount(value, *, allow_zero: bool = True, quantum: Decimal = STORAGE_QUANTUM) -> Decimal:
    """
    Coerce an incoming amount, mapping bad input to InvalidAmountError.

    Amounts finer than ``quantum`` are refused rather than rounded, so the
    value returned is exactly the value stored.
    """
    try:
        amount = to_decimal(value)
        exact = amount.quantize(quantum)
    except (TypeError, ValueError, InvalidOperation) as e:
        raise InvalidAmountError(str(value), str(e) or "out of range") from e
    if exact != amount:
        raise InvalidAmountError(str(amount), f"more precise than {quantum}")
    amount = exact
    if amount < ZERO or (amount == ZERO and not allow_zero):
        raise InvalidAmountError(
            str(amount),
            "must be positive" if not allow_zero else "must not be negative",
        )
    return amount


class SovLedgerService(BaseService):
    """Write side of the schedule of values."""

    def __init__(
        self,
        session: Session,
        store: SettlementStore,
        auditor: AuditorService,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        super().__init__(session, clock, policy)
        self._store = store
        self._auditor = auditor

    # Project setup

    def create_project(
        self,
        actor_id: UUID,
        *,
        name: str,
        organization_id: UUID,
        director_id: UUID,
        retainage_percent: Decimal | str | None = None,
        reviewer_ids: tuple[UUID, ...] = (),
        contractor_ids: tuple[UUID, ...] = (),
        started_on: date | None = None,
    ) -> ProjectModel:
        if retainage_percent is None:
            percent = self.policy.default_retainage_percent
        else:
            percent = parse_amount(retainage_percent)
            if percent > Decimal("100"):
                raise InvalidAmountError(str(percent), "retainage percent must be within 0..100")

        project = ProjectModel(
            name=name,
            organization_id=organization_id,
            director_id=director_id,
            retainage_percent=percent,
            open_period_number=1,
            open_period_started_on=started_on or self.clock.today(),
            application_count=0,
            created_by_id=actor_id,
        )
        project.reviewers = [
            ProjectReviewerModel(reviewer_id=rid, review_order=i, created_by_id=actor_id)
            for i, rid in enumerate(reviewer_ids)
        ]
        project.contractors = [
            ProjectContractorModel(contractor_id=cid, created_by_id=actor_id)
            for cid in dict.fromkeys(contractor_ids)
        ]
        self._store.save_project(project)
        self._auditor.record_project_created(project.id, name, str(percent), actor_id)

        logger.info(
            "project_created",
            extra={"project_id": str(project.id), "retainage_percent": str(percent)},
        )
        return project

    def add_reviewer(self, actor_id: UUID, project_id: UUID, reviewer_id: UUID) -> ProjectModel:
        """Append a reviewer to the roster; chains already fixed are unaffected."""
        project = self._store.load_project(project_id, for_update=True)
        if any(r.reviewer_id == reviewer_id for r in project.reviewers):
            return project
        next_order = max((r.review_order for r in project.reviewers), default=-1) + 1
        project.reviewers.append(
            ProjectReviewerModel(
                reviewer_id=reviewer_id, review_order=next_order, created_by_id=actor_id,
            )
        )
        return self._store.save_project(project)

    def assign_contractor(self, actor_id: UUID, project_id: UUID, contractor_id: UUID) -> ProjectModel:
        project = self._store.load_project(project_id, for_update=True)
        if not any(c.contractor_id == contractor_id for c in project.contractors):
            project.contractors.append(
                ProjectContractorModel(contractor_id=contractor_id, created_by_id=actor_id)
            )
            self._store.save_project(project)
        return project

    # Line items

    def create_line_item(
        self,
        actor_id: UUID,
        project_id: UUID,
        item_number: int,
        description: str,
        scheduled_value: Decimal | str | int,
    ) -> LineItemModel:
        """
        Add a line to the project's schedule of values.

        Raises:
            InvalidAmountError: scheduled value <= 0.
            DuplicateItemNumberError: item number already used in the project.
        """
        value = parse_amount(scheduled_value, allow_zero=False, quantum=self.policy.money_quantum)
        project = self._store.load_project(project_id)
        if self._store.item_number_taken(project.id, item_number):
            raise DuplicateItemNumberError(str(project.id), item_number)

        line_item = LineItemModel(
            project_id=project.id,
            item_number=item_number,
            description=description,
            scheduled_value=value,
            from_previous_application=ZERO,
            this_period=ZERO,
            materials_stored=ZERO,
            created_by_id=actor_id,
        )
        self._store.save_line_item(line_item)
        self._auditor.record_line_item_change(
            line_item.id,
            AuditAction.LINE_ITEM_CREATED,
            actor_id,
            project_id=project.id,
            item_number=item_number,
            scheduled_value=value,
        )
        logger.info(
            "line_item_created",
            extra={
                "line_item_id": str(line_item.id),
                "item_number": item_number,
                "scheduled_value": str(value),
            },
        )
        return line_item

    def recompute(
        self,
        actor_id: UUID,
        line_item_id: UUID,
        expected_version: int | None = None,
    ) -> LineItemModel:
        """
        Rewrite ``this_period`` from the approved expenses of the open period.

        Raises:
            OverScheduleError / NegativeCompletionError: the reconciled total
                would break the line's ceiling or floor.  Nothing is written.
        """
        line_item = self._store.load_line_item(line_item_id, for_update=True)
        project = self._store.load_project(line_item.project_id)
        new_this_period = sum_this_period(
            self._store.approved_amounts(line_item.id, project.open_period_number)
        )
        check_line_totals(
            str(line_item.id),
            line_item.scheduled_value,
            line_item.from_previous_application,
            new_this_period,
            line_item.materials_stored,
        )
        if new_this_period == line_item.this_period:
            return line_item

        previous = line_item.this_period
        line_item.this_period = new_this_period
        line_item.updated_by_id = actor_id
        self._store.save_line_item(line_item, expected_version)
        self._auditor.record_line_item_change(
            line_item.id,
            AuditAction.LINE_ITEM_RECOMPUTED,
            actor_id,
            billing_period=project.open_period_number,
            previous_this_period=previous,
            this_period=new_this_period,
        )
        logger.info(
            "line_item_recomputed",
            extra={
                "line_item_id": str(line_item.id),
                "this_period": str(new_this_period),
            },
        )
        return line_item

    def check_with_delta(self, line_item: LineItemModel, billing_period: int, delta: Decimal) -> None:
        """Validate the line as if ``delta`` were added to the approved total."""
        prospective = sum_this_period(
            self._store.approved_amounts(line_item.id, billing_period)
        ) + delta
        check_line_totals(
            str(line_item.id),
            line_item.scheduled_value,
            line_item.from_previous_application,
            prospective,
            line_item.materials_stored,
        )

    def set_materials_stored(
        self,
        actor_id: UUID,
        line_item_id: UUID,
        amount: Decimal | str | int,
        expected_version: int | None = None,
    ) -> LineItemModel:
        """
        Record the contractor-declared value of materials stored on site.

        Raises:
            InvalidAmountError: negative amount.
            OverScheduleError: the declared amount breaks the line's ceiling.
        """
        stored = parse_amount(amount, quantum=self.policy.money_quantum)
        line_item = self._store.load_line_item(line_item_id, for_update=True)
        check_line_totals(
            str(line_item.id),
            line_item.scheduled_value,
            line_item.from_previous_application,
            line_item.this_period,
            stored,
        )
        previous = line_item.materials_stored
        line_item.materials_stored = stored
        line_item.updated_by_id = actor_id
        self._store.save_line_item(line_item, expected_version)
        self._auditor.record_line_item_change(
            line_item.id,
            AuditAction.MATERIALS_STORED_SET,
            actor_id,
            previous_materials_stored=previous,
            materials_stored=stored,
        )
        return line_item

    def roll_forward(
        self,
        actor_id: UUID,
        line_item_id: UUID,
        pay_app: PayApplicationModel,
    ) -> bool:
        """
        Fold this period into previous applications for a finalized pay
        application.

        Returns False and changes nothing when the roll does not belong to
        ``pay_app``: the line was already rolled for it, the line is not in
        its final snapshot, or the project has since opened a later period.

        Raises:
            ApplicationProjectMismatchError: the application is on another project.
        """
        line_item = self._store.load_line_item(line_item_id, for_update=True)
        if line_item.project_id != pay_app.project_id:
            raise ApplicationProjectMismatchError(str(pay_app.id), str(line_item.id))

        reason = self._roll_forward_skip_reason(line_item, pay_app)
        if reason is not None:
            logger.info(
                "roll_forward_skipped",
                extra={"line_item_id": str(line_item.id), "reason": reason},
            )
            return False

        new_previous, new_this_period = roll_forward_totals(
            line_item.from_previous_application, line_item.this_period,
        )
        rolled_amount = line_item.this_period
        line_item.from_previous_application = new_previous
        line_item.this_period = new_this_period
        line_item.last_rolled_application_id = pay_app.id
        line_item.updated_by_id = actor_id
        self._store.save_line_item(line_item)
        self._auditor.record_line_item_change(
            line_item.id,
            AuditAction.LINE_ITEM_ROLLED_FORWARD,
            actor_id,
            pay_application_id=pay_app.id,
            rolled_amount=rolled_amount,
            from_previous_application=new_previous,
        )
        return True

    def _roll_forward_skip_reason(self, line_item: LineItemModel, pay_app: PayApplicationModel) -> str | None:
        if line_item.last_rolled_application_id == pay_app.id:
            return "already_rolled"
        snapshot = pay_app.lines_for_submission(pay_app.submission_number)
        if line_item.id not in {line.line_item_id for line in snapshot}:
            return "not_in_snapshot"
        project = self._store.load_project(pay_app.project_id)
        # While finalizing, the open period is still the application's own;
        # afterwards this application must be the latest one finalized.
        still_current = (
            project.open_period_number == pay_app.billing_period
            or project.last_finalized_application_id == pay_app.id
        )
        if not still_current:
            return "period_closed"
        return None

    def open_next_period(
        self,
        actor_id: UUID,
        project_id: UUID,
        pay_application_id: UUID,
    ) -> bool:
        """Advance the project's open period once per finalized application."""
        project = self._store.load_project(project_id, for_update=True)
        if project.last_finalized_application_id == pay_application_id:
            return False

        project.open_period_number += 1
        project.open_period_started_on = self.clock.today()
        project.last_finalized_application_id = pay_application_id
        project.updated_by_id = actor_id
        self._store.save_project(project)
        self._auditor.record_period_opened(
            project.id, project.open_period_number, pay_application_id, actor_id,
        )
        logger.info(
            "billing_period_opened",
            extra={"period_number": project.open_period_number},
        )
        return True

    # Figures

    def figures(self, line_item_id: UUID) -> LineItemFigures:
        line_item = self._store.load_line_item(line_item_id)
        project = self._store.load_project(line_item.project_id)
        return line_item.to_figures(project.retainage_percent, self.policy)

    def project_totals(self, project_id: UUID) -> ProjectTotals:
        project = self._store.load_project(project_id)
        return aggregate(
            (li.to_figures(project.retainage_percent, self.policy)
             for li in self._store.line_items(project.id)),
            self.policy,
        )
