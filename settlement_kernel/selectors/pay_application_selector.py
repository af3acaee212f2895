"""
Module: settlement_kernel.selectors.pay_application_selector
Responsibility: Read-only access to pay applications and reviewer work queues.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.dtos import PayApplicationInfo
from settlement_kernel.domain.workflow import PayApplicationStatus
from settlement_kernel.exceptions import PayApplicationNotFoundError
from settlement_kernel.models.pay_application import PayApplicationModel
from settlement_kernel.selectors.base import BaseSelector


class PayApplicationSelector(BaseSelector):
    """Read model for pay applications."""

    def load(self, pay_application_id: UUID) -> PayApplicationInfo:
        pay_app = self.session.get(PayApplicationModel, pay_application_id)
        if pay_app is None:
            raise PayApplicationNotFoundError(str(pay_application_id))
        return pay_app.to_dto()

    def list_for_project(self, project_id: UUID) -> list[PayApplicationInfo]:
        rows = self.session.execute(
            select(PayApplicationModel)
            .where(PayApplicationModel.project_id == project_id)
            .order_by(PayApplicationModel.application_number)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def awaiting_reviewer(self, reviewer_id: UUID) -> list[PayApplicationInfo]:
        """Applications whose cursor currently points at ``reviewer_id``."""
        rows = self.session.execute(
            select(PayApplicationModel)
            .where(PayApplicationModel.status == PayApplicationStatus.UNDER_REVIEW.value)
            .order_by(PayApplicationModel.submitted_at)
        ).scalars().all()
        return [
            dto for dto in (row.to_dto() for row in rows)
            if dto.current_reviewer_id == reviewer_id
        ]
