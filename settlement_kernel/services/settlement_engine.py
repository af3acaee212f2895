"""
SettlementEngine -- the public API of the settlement kernel.

Responsibility:
    One method per ledger mutation and review transition.  Each method
    authorizes the actor, runs the operation inside a SAVEPOINT, and
    returns a frozen DTO.  Nothing below this class is meant to be called
    by the UI/API layer directly.

Architecture position:
    Kernel > Services -- the outermost kernel object.  Wires
    SettlementStore, AuditorService, SovLedgerService, ExpenseLedgerService,
    ReviewWorkflowService and SettlementExporter around one Session.

Invariants enforced:
    - All-or-nothing: every public operation runs in
      ``session.begin_nested()``; any exception rolls back every write the
      operation made (line items, expenses, snapshot rows, audit events).
    - Contractor writes are allowed only while the project's open pay
      application is draft or changes_requested, or none is open.
    - ``StaleDataError`` never escapes: it becomes ConflictError.
    - The engine flushes but never commits; ``session_scope()`` or the
      caller owns the outer transaction.

Failure modes:
    - Every SettlementKernelError subclass, unchanged.
    - ConflictError on optimistic lock failure.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from settlement_kernel.domain.certificate import Certificate
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import ExpenseInfo, LineItemInfo, PayApplicationInfo, ProjectInfo
from settlement_kernel.domain.identity import Actor, IdentityProvider, Role
from settlement_kernel.domain.ledger_math import ProjectTotals
from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy
from settlement_kernel.domain.workflow import CONTRACTOR_WRITABLE_STATUSES, PayApplicationStatus
from settlement_kernel.exceptions import (
    ApplicationLockedError,
    ConflictError,
    ForbiddenError,
    NotFinalizedError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.models.project import ProjectModel
from settlement_kernel.services.access_guard import AccessGuard
from settlement_kernel.services.auditor_service import AuditorService
from settlement_kernel.services.expense_ledger_service import ExpenseLedgerService
from settlement_kernel.services.review_workflow_service import ReviewWorkflowService
from settlement_kernel.services.settlement_exporter import SettlementExporter
from settlement_kernel.services.sov_ledger_service import SovLedgerService
from settlement_kernel.services.store import SettlementStore

logger = get_logger("services.settlement_engine")

T = TypeVar("T")


class SettlementEngine:
    """
    Facade over the settlement kernel services.

    Every operation takes the authenticated ``Actor`` first.  Passing
    ``actor=None`` asks the identity collaborator for the current user.

    Usage:
        with session_scope() as session:
            engine = SettlementEngine(session, identity)
            engine.submit(actor, pay_application_id)
    """

    def __init__(
        self,
        session: Session,
        identity: IdentityProvider,
        clock: Clock | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self._session = session
        self._identity = identity
        self._clock = clock or SystemClock()
        self._policy = policy or DEFAULT_LEDGER_POLICY

        self._store = SettlementStore(session)
        self._guard = AccessGuard(identity)
        self._auditor = AuditorService(session, self._clock)
        self._sov = SovLedgerService(
            session, self._store, self._auditor, self._clock, self._policy,
        )
        self._expenses = ExpenseLedgerService(
            session, self._store, self._auditor, self._sov, self._clock, self._policy,
        )
        self._workflow = ReviewWorkflowService(
            session, self._store, self._auditor, self._sov, self._clock, self._policy,
        )
        self._exporter = SettlementExporter(session, self._store, self._policy)

    @property
    def auditor(self) -> AuditorService:
        return self._auditor

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _resolve(self, actor: Actor | None) -> Actor:
        return actor if actor is not None else self._identity.current_user()

    def _run(
        self,
        operation: str,
        actor: Actor,
        fn: Callable[[], T],
        *,
        project_id: UUID | None = None,
        pay_application_id: UUID | None = None,
    ) -> T:
        """Run ``fn`` atomically inside a SAVEPOINT with log context bound."""
        with LogContext.bind(
            correlation_id=str(uuid.uuid4()),
            actor_id=str(actor.id),
            project_id=str(project_id) if project_id else None,
            pay_application_id=str(pay_application_id) if pay_application_id else None,
            operation=operation,
        ):
            try:
                with self._session.begin_nested():
                    result = fn()
            except StaleDataError as e:
                logger.warning("operation_conflict", extra={"detail": str(e)})
                entity_type = "PayApplication" if pay_application_id else "LineItem"
                raise ConflictError(entity_type, str(pay_application_id or project_id), str(e)) from e
            except Exception as e:
                logger.info(
                    "operation_rejected",
                    extra={
                        "error_code": getattr(e, "code", type(e).__name__),
                        "error": str(e),
                    },
                )
                raise
            logger.info("operation_completed")
            return result

    def _authorize(self, actor: Actor, operation: str, project_id: UUID) -> ProjectModel:
        project = self._store.load_project(project_id)
        self._guard.require(actor, operation, project)
        return project

    def _require_contractor_writable(self, project: ProjectModel) -> None:
        open_app = self._store.open_pay_application(project.id, for_update=True)
        if open_app is None:
            return
        if PayApplicationStatus(open_app.status) not in CONTRACTOR_WRITABLE_STATUSES:
            raise ApplicationLockedError(str(open_app.id), open_app.status)

    def _line_info(self, line_item_id: UUID) -> LineItemInfo:
        line_item = self._store.load_line_item(line_item_id)
        return LineItemInfo(
            id=line_item.id,
            project_id=line_item.project_id,
            version=line_item.version,
            figures=self._sov.figures(line_item.id),
        )

    def _project_of_line(self, line_item_id: UUID) -> UUID:
        return self._store.load_line_item(line_item_id).project_id

    def _project_of_expense(self, expense_id: UUID) -> UUID:
        expense = self._store.load_expense(expense_id)
        return self._store.load_line_item(expense.line_item_id).project_id

    def _project_of_application(self, pay_application_id: UUID) -> UUID:
        return self._store.load_pay_application(pay_application_id).project_id

    # ------------------------------------------------------------------
    # Project setup
    # ------------------------------------------------------------------

    def create_project(
        self,
        actor: Actor | None,
        name: str,
        *,
        retainage_percent: Decimal | str | None = None,
        reviewer_ids: tuple[UUID, ...] = (),
        contractor_ids: tuple[UUID, ...] = (),
        started_on: date | None = None,
    ) -> ProjectInfo:
        """Create a project owned by the acting director's organization."""
        actor = self._resolve(actor)

        def op():
            self._guard.require_role(actor, "create_project")
            project = self._sov.create_project(
                actor.id,
                name=name,
                organization_id=actor.organization_id,
                director_id=actor.id,
                retainage_percent=retainage_percent,
                reviewer_ids=tuple(reviewer_ids),
                contractor_ids=tuple(contractor_ids),
                started_on=started_on,
            )
            return project.to_dto()

        return self._run("create_project", actor, op)

    def add_reviewer(self, actor: Actor | None, project_id: UUID, reviewer_id: UUID) -> ProjectInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "add_reviewer", project_id)
            return self._sov.add_reviewer(actor.id, project_id, reviewer_id).to_dto()

        return self._run("add_reviewer", actor, op, project_id=project_id)

    def assign_contractor(self, actor: Actor | None, project_id: UUID, contractor_id: UUID) -> ProjectInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "assign_contractor", project_id)
            return self._sov.assign_contractor(actor.id, project_id, contractor_id).to_dto()

        return self._run("assign_contractor", actor, op, project_id=project_id)

    # ------------------------------------------------------------------
    # Schedule of values
    # ------------------------------------------------------------------

    def create_line_item(
        self,
        actor: Actor | None,
        project_id: UUID,
        item_number: int,
        description: str,
        scheduled_value: Decimal | str | int,
    ) -> LineItemInfo:
        actor = self._resolve(actor)

        def op():
            project = self._authorize(actor, "create_line_item", project_id)
            self._require_contractor_writable(project)
            line_item = self._sov.create_line_item(
                actor.id, project_id, item_number, description, scheduled_value,
            )
            return line_item.to_dto(project.retainage_percent, self._policy)

        return self._run("create_line_item", actor, op, project_id=project_id)

    def recompute(
        self,
        actor: Actor | None,
        line_item_id: UUID,
        expected_version: int | None = None,
    ) -> LineItemInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "recompute", self._project_of_line(line_item_id))
            self._sov.recompute(actor.id, line_item_id, expected_version)
            return self._line_info(line_item_id)

        return self._run("recompute", actor, op)

    def set_materials_stored(
        self,
        actor: Actor | None,
        line_item_id: UUID,
        amount: Decimal | str | int,
        expected_version: int | None = None,
    ) -> LineItemInfo:
        actor = self._resolve(actor)

        def op():
            project = self._authorize(actor, "set_materials_stored", self._project_of_line(line_item_id))
            self._require_contractor_writable(project)
            self._sov.set_materials_stored(actor.id, line_item_id, amount, expected_version)
            return self._line_info(line_item_id)

        return self._run("set_materials_stored", actor, op)

    def roll_forward(
        self,
        actor: Actor | None,
        line_item_id: UUID,
        pay_application_id: UUID,
    ) -> LineItemInfo:
        """
        Roll a line forward for a finalized application.  Finalization
        already does this, so repeating it, naming an older application or
        naming a line outside its snapshot is a no-op.
        """
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "roll_forward", self._project_of_line(line_item_id))
            pay_app = self._store.load_pay_application(pay_application_id)
            if pay_app.status != PayApplicationStatus.FINALIZED.value:
                raise NotFinalizedError(str(pay_app.id), pay_app.status)
            self._sov.roll_forward(actor.id, line_item_id, pay_app)
            return self._line_info(line_item_id)

        return self._run(
            "roll_forward", actor, op, pay_application_id=pay_application_id,
        )

    def line_item(self, actor: Actor | None, line_item_id: UUID) -> LineItemInfo:
        actor = self._resolve(actor)
        self._authorize(actor, "export", self._project_of_line(line_item_id))
        return self._line_info(line_item_id)

    def project_totals(self, actor: Actor | None, project_id: UUID) -> ProjectTotals:
        """G702 summary figures over the live schedule of values."""
        actor = self._resolve(actor)
        self._authorize(actor, "export", project_id)
        return self._sov.project_totals(project_id)

    def unresolved_count(self, actor: Actor | None, project_id: UUID) -> int:
        """Pending expenses that would block submission."""
        actor = self._resolve(actor)
        self._authorize(actor, "export", project_id)
        return self._expenses.unresolved_count(project_id)

    # ------------------------------------------------------------------
    # Expenses
    # ------------------------------------------------------------------

    def add_expense(
        self,
        actor: Actor | None,
        line_item_id: UUID,
        amount: Decimal | str | int,
        category: str,
        incurred_on: date,
        description: str = "",
        comment: str = "",
    ) -> ExpenseInfo:
        actor = self._resolve(actor)

        def op():
            project = self._authorize(actor, "add_expense", self._project_of_line(line_item_id))
            self._require_contractor_writable(project)
            return self._expenses.add_expense(
                actor.id, line_item_id, amount, category, incurred_on, description, comment,
            ).to_dto()

        return self._run("add_expense", actor, op)

    def approve_expense(self, actor: Actor | None, expense_id: UUID) -> ExpenseInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "approve_expense", self._project_of_expense(expense_id))
            return self._expenses.approve_expense(actor.id, expense_id).to_dto()

        return self._run("approve_expense", actor, op)

    def remove_expense(self, actor: Actor | None, expense_id: UUID) -> None:
        actor = self._resolve(actor)

        def op():
            project = self._authorize(actor, "remove_expense", self._project_of_expense(expense_id))
            if actor.role is Role.CONTRACTOR:
                expense = self._store.load_expense(expense_id)
                if expense.created_by_id != actor.id:
                    raise ForbiddenError(
                        str(actor.id), "remove_expense", "contractors may only remove their own expenses",
                    )
                self._require_contractor_writable(project)
            self._expenses.remove_expense(actor.id, expense_id)

        self._run("remove_expense", actor, op)

    def reverse_expense(self, actor: Actor | None, expense_id: UUID, reason: str) -> ExpenseInfo:
        actor = self._resolve(actor)

        def op():
            project = self._authorize(actor, "reverse_expense", self._project_of_expense(expense_id))
            self._require_contractor_writable(project)
            return self._expenses.reverse_expense(actor.id, expense_id, reason).to_dto()

        return self._run("reverse_expense", actor, op)

    def attach_receipt(self, actor: Actor | None, expense_id: UUID, receipt_uri: str) -> ExpenseInfo:
        actor = self._resolve(actor)

        def op():
            project = self._authorize(actor, "attach_receipt", self._project_of_expense(expense_id))
            self._require_contractor_writable(project)
            return self._expenses.attach_receipt(actor.id, expense_id, receipt_uri).to_dto()

        return self._run("attach_receipt", actor, op)

    # ------------------------------------------------------------------
    # Review workflow
    # ------------------------------------------------------------------

    def create_draft(self, actor: Actor | None, project_id: UUID) -> PayApplicationInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "create_draft", project_id)
            return self._workflow.create_draft(actor.id, project_id, actor.id).to_dto()

        return self._run("create_draft", actor, op, project_id=project_id)

    def submit(
        self,
        actor: Actor | None,
        pay_application_id: UUID,
        expected_version: int | None = None,
    ) -> PayApplicationInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "submit", self._project_of_application(pay_application_id))
            return self._workflow.submit(actor.id, pay_application_id, expected_version).to_dto()

        return self._run("submit", actor, op, pay_application_id=pay_application_id)

    def approve(
        self,
        actor: Actor | None,
        pay_application_id: UUID,
        note: str = "",
        expected_version: int | None = None,
    ) -> PayApplicationInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "approve", self._project_of_application(pay_application_id))
            return self._workflow.approve(
                actor.id, pay_application_id, actor.id, note, expected_version,
            ).to_dto()

        return self._run("approve", actor, op, pay_application_id=pay_application_id)

    def request_changes(
        self,
        actor: Actor | None,
        pay_application_id: UUID,
        note: str = "",
        expected_version: int | None = None,
    ) -> PayApplicationInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "request_changes", self._project_of_application(pay_application_id))
            return self._workflow.request_changes(
                actor.id, pay_application_id, actor.id, note, expected_version,
            ).to_dto()

        return self._run("request_changes", actor, op, pay_application_id=pay_application_id)

    def finalize(
        self,
        actor: Actor | None,
        pay_application_id: UUID,
        expected_version: int | None = None,
    ) -> PayApplicationInfo:
        actor = self._resolve(actor)

        def op():
            self._authorize(actor, "finalize", self._project_of_application(pay_application_id))
            return self._workflow.finalize(actor.id, pay_application_id, expected_version).to_dto()

        return self._run("finalize", actor, op, pay_application_id=pay_application_id)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def export(self, actor: Actor | None, pay_application_id: UUID) -> Certificate:
        """Certificate of a finalized application. Read-only."""
        actor = self._resolve(actor)
        with LogContext.bind(
            actor_id=str(actor.id),
            pay_application_id=str(pay_application_id),
            operation="export",
        ):
            self._authorize(actor, "export", self._project_of_application(pay_application_id))
            return self._exporter.export(pay_application_id)
