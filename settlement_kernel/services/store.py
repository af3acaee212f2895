"""
SettlementStore -- the persisted-state boundary of the engine.

Responsibility:
    Loads aggregates (projects, line items, expenses, pay applications)
    and saves them with an optimistic compare-and-swap.  Every other
    service reaches the database through this class or through plain
    read queries; none of them issue UPDATE statements directly.

Architecture position:
    Kernel > Services.  May import from models/, domain/, exceptions.

Invariants enforced:
    - Loads ``for_update`` take a row lock (``SELECT ... FOR UPDATE``) on
      PostgreSQL and refresh the identity map (``populate_existing``) so a
      serialized caller always decides on committed state.
    - Saves compare ``expected_version`` (when given) against the row and
      rely on ``version_id_col`` for the UPDATE itself.  A lost race
      surfaces as ConflictError, never as a silent overwrite.

Failure modes:
    - *NotFoundError for unknown ids.
    - ConflictError on version mismatch or StaleDataError.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from settlement_kernel.domain.workflow import OPEN_STATUSES
from settlement_kernel.exceptions import (
    ConflictError,
    ExpenseNotFoundError,
    LineItemNotFoundError,
    PayApplicationNotFoundError,
    ProjectNotFoundError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.expense import ExpenseModel
from settlement_kernel.models.pay_application import PayApplicationModel
from settlement_kernel.models.project import LineItemModel, ProjectModel

logger = get_logger("services.store")


class SettlementStore:
    """Load/save boundary with compare-and-swap writes."""

    def __init__(self, session: Session):
        self._session = session

    # Loads

    def _load(self, model, entity_id: UUID, for_update: bool):
        stmt = select(model).where(model.id == entity_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def load_project(self, project_id: UUID, for_update: bool = False) -> ProjectModel:
        project = self._load(ProjectModel, project_id, for_update)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def load_line_item(self, line_item_id: UUID, for_update: bool = False) -> LineItemModel:
        line_item = self._load(LineItemModel, line_item_id, for_update)
        if line_item is None:
            raise LineItemNotFoundError(str(line_item_id))
        return line_item

    def load_expense(self, expense_id: UUID, for_update: bool = False) -> ExpenseModel:
        expense = self._load(ExpenseModel, expense_id, for_update)
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        return expense

    def load_pay_application(
        self,
        pay_application_id: UUID,
        for_update: bool = False,
        expected_version: int | None = None,
    ) -> PayApplicationModel:
        pay_app = self._load(PayApplicationModel, pay_application_id, for_update)
        if pay_app is None:
            raise PayApplicationNotFoundError(str(pay_application_id))
        self._check_version("PayApplication", pay_app, expected_version)
        return pay_app

    def line_items(self, project_id: UUID, for_update: bool = False) -> list[LineItemModel]:
        stmt = (
            select(LineItemModel)
            .where(LineItemModel.project_id == project_id)
            .order_by(LineItemModel.item_number)
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self._session.execute(stmt).scalars().all())

    def item_number_taken(self, project_id: UUID, item_number: int) -> bool:
        count = self._session.execute(
            select(func.count(LineItemModel.id)).where(
                LineItemModel.project_id == project_id,
                LineItemModel.item_number == item_number,
            )
        ).scalar_one()
        return count > 0

    def open_pay_application(
        self,
        project_id: UUID,
        for_update: bool = False,
    ) -> PayApplicationModel | None:
        """The project's single non-finalized pay application, if any."""
        stmt = select(PayApplicationModel).where(
            PayApplicationModel.project_id == project_id,
            PayApplicationModel.status.in_([s.value for s in OPEN_STATUSES]),
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def approved_amounts(self, line_item_id: UUID, billing_period: int) -> list:
        return list(
            self._session.execute(
                select(ExpenseModel.amount).where(
                    ExpenseModel.line_item_id == line_item_id,
                    ExpenseModel.billing_period == billing_period,
                    ExpenseModel.approved.is_(True),
                )
            ).scalars().all()
        )

    def pending_expenses(self, project_id: UUID, billing_period: int) -> list[ExpenseModel]:
        return list(
            self._session.execute(
                select(ExpenseModel)
                .join(LineItemModel, ExpenseModel.line_item_id == LineItemModel.id)
                .where(
                    LineItemModel.project_id == project_id,
                    ExpenseModel.billing_period == billing_period,
                    ExpenseModel.approved.is_(False),
                )
                .order_by(ExpenseModel.created_at)
            ).scalars().all()
        )

    def reversal_of(self, expense_id: UUID) -> ExpenseModel | None:
        return self._session.execute(
            select(ExpenseModel).where(ExpenseModel.reverses_expense_id == expense_id)
        ).scalar_one_or_none()

    def last_finalized_application(self, project: ProjectModel) -> PayApplicationModel | None:
        if project.last_finalized_application_id is None:
            return None
        return self._load(PayApplicationModel, project.last_finalized_application_id, False)

    # Saves

    def save_project(self, project: ProjectModel) -> ProjectModel:
        self._session.add(project)
        self._flush("Project", project)
        return project

    def save_line_item(
        self,
        line_item: LineItemModel,
        expected_version: int | None = None,
    ) -> LineItemModel:
        self._check_version("LineItem", line_item, expected_version)
        self._session.add(line_item)
        self._flush("LineItem", line_item)
        return line_item

    def save_expense(self, expense: ExpenseModel) -> ExpenseModel:
        self._session.add(expense)
        self._flush("Expense", expense)
        return expense

    def delete_expense(self, expense: ExpenseModel) -> None:
        self._session.delete(expense)
        self._flush("Expense", expense)

    def save_pay_application(
        self,
        pay_app: PayApplicationModel,
        expected_version: int | None = None,
    ) -> PayApplicationModel:
        self._check_version("PayApplication", pay_app, expected_version)
        self._session.add(pay_app)
        self._flush("PayApplication", pay_app)
        return pay_app

    def add(self, instance) -> None:
        """Stage a child row (snapshot line, decision, slot) for the next flush."""
        self._session.add(instance)

    # Internals

    @staticmethod
    def _check_version(entity_type: str, instance, expected_version: int | None) -> None:
        if expected_version is None or instance.version is None:
            return
        if instance.version != expected_version:
            logger.warning(
                "version_conflict",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(instance.id),
                    "expected_version": expected_version,
                    "actual_version": instance.version,
                },
            )
            raise ConflictError(
                entity_type,
                str(instance.id),
                f"expected version {expected_version}, found {instance.version}",
            )

    def _flush(self, entity_type: str, instance) -> None:
        try:
            self._session.flush()
        except StaleDataError as e:
            logger.warning(
                "stale_write_rejected",
                extra={"entity_type": entity_type, "entity_id": str(instance.id)},
            )
            raise ConflictError(entity_type, str(instance.id), "row changed concurrently") from e
