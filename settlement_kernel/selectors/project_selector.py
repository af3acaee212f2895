"""
Module: settlement_kernel.selectors.project_selector
Responsibility: Read-only access to projects, their schedule of values and
    expenses, plus the project dashboard roll-up.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Dashboard totals are computed by ``ledger_math.aggregate`` over the
      same per-line figures ``LineItemInfo`` carries; nothing here
      re-implements percent, balance or retainage math.

Failure modes:
    - ProjectNotFoundError / LineItemNotFoundError for unknown ids.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select

from settlement_kernel.domain.dtos import ExpenseInfo, LineItemInfo, PayApplicationInfo, ProjectInfo
from settlement_kernel.domain.ledger_math import ProjectTotals, aggregate
from settlement_kernel.domain.workflow import OPEN_STATUSES
from settlement_kernel.exceptions import LineItemNotFoundError, ProjectNotFoundError
from settlement_kernel.models.expense import ExpenseModel
from settlement_kernel.models.pay_application import PayApplicationModel
from settlement_kernel.models.project import LineItemModel, ProjectModel
from settlement_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ProjectDashboard:
    """Everything the project page shows in one read."""

    project: ProjectInfo
    line_items: tuple[LineItemInfo, ...]
    totals: ProjectTotals
    open_application: PayApplicationInfo | None
    pending_expense_count: int


class ProjectSelector(BaseSelector):
    """Read model for projects and their schedule of values."""

    def _project(self, project_id: UUID) -> ProjectModel:
        project = self.session.get(ProjectModel, project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def load_project(self, project_id: UUID) -> ProjectInfo:
        return self._project(project_id).to_dto()

    def line_items(self, project_id: UUID) -> list[LineItemInfo]:
        project = self._project(project_id)
        rows = self.session.execute(
            select(LineItemModel)
            .where(LineItemModel.project_id == project.id)
            .order_by(LineItemModel.item_number)
        ).scalars().all()
        return [li.to_dto(project.retainage_percent, self.policy) for li in rows]

    def expenses(self, line_item_id: UUID) -> list[ExpenseInfo]:
        if self.session.get(LineItemModel, line_item_id) is None:
            raise LineItemNotFoundError(str(line_item_id))
        rows = self.session.execute(
            select(ExpenseModel)
            .where(ExpenseModel.line_item_id == line_item_id)
            .order_by(ExpenseModel.created_at)
        ).scalars().all()
        return [e.to_dto() for e in rows]

    def dashboard(self, project_id: UUID) -> ProjectDashboard:
        project = self._project(project_id)
        lines = tuple(self.line_items(project.id))
        open_app = self.session.execute(
            select(PayApplicationModel).where(
                PayApplicationModel.project_id == project.id,
                PayApplicationModel.status.in_([s.value for s in OPEN_STATUSES]),
            )
        ).scalar_one_or_none()
        pending = self.session.execute(
            select(func.count(ExpenseModel.id))
            .select_from(ExpenseModel)
            .join(LineItemModel, ExpenseModel.line_item_id == LineItemModel.id)
            .where(
                LineItemModel.project_id == project.id,
                ExpenseModel.billing_period == project.open_period_number,
                ExpenseModel.approved.is_(False),
            )
        ).scalar_one()
        return ProjectDashboard(
            project=project.to_dto(),
            line_items=lines,
            totals=aggregate((li.figures for li in lines), self.policy),
            open_application=open_app.to_dto() if open_app is not None else None,
            pending_expense_count=pending,
        )
