"""SQLAlchemy ORM models for the settlement kernel."""

from settlement_kernel.models.audit_event import AuditAction, AuditEvent
from settlement_kernel.models.expense import ExpenseModel
from settlement_kernel.models.pay_application import (
    PayApplicationModel,
    ReviewDecisionModel,
    ReviewerSlotModel,
    SnapshotLineModel,
)
from settlement_kernel.models.project import (
    LineItemModel,
    ProjectContractorModel,
    ProjectModel,
    ProjectReviewerModel,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "ExpenseModel",
    "LineItemModel",
    "PayApplicationModel",
    "ProjectContractorModel",
    "ProjectModel",
    "ProjectReviewerModel",
    "ReviewDecisionModel",
    "ReviewerSlotModel",
    "SnapshotLineModel",
]
