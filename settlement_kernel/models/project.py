"""
Module: settlement_kernel.models.project
Responsibility: ORM persistence for projects, their reviewer roster and
    contractor assignments, and the schedule-of-values line items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (project_id, item_number) is unique: item numbers define the
      canonical ordering of the schedule of values.
    - (project_id, review_order) and (project_id, reviewer_id) are unique
      on the roster.
    - LineItemModel carries a version column used as an optimistic
      compare-and-swap on every UPDATE (StaleDataError on mismatch).
    - scheduled_value > 0 and materials_stored >= 0 (check constraints).

Failure modes:
    - IntegrityError on duplicate item number (services pre-check and raise
      DuplicateItemNumberError first).
    - StaleDataError when a concurrent writer bumped the version.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, UUIDString


class ProjectModel(TrackedBase):
    """
    A construction project with one schedule of values.

    Guarantees:
        - ``open_period_number`` only increases, once per finalized
          pay application (guarded by ``last_finalized_application_id``).
        - ``retainage_percent`` is project-level policy applied to every line.
    """

    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_organization", "organization_id"),
        CheckConstraint(
            "retainage_percent >= 0 AND retainage_percent <= 100",
            name="ck_project_retainage_range",
        ),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    director_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    retainage_percent: Mapped[Decimal] = mapped_column(nullable=False)
    open_period_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    open_period_started_on: Mapped[date] = mapped_column(Date, nullable=False)
    last_finalized_application_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    application_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    reviewers: Mapped[list["ProjectReviewerModel"]] = relationship(
        "ProjectReviewerModel",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectReviewerModel.review_order",
        lazy="selectin",
    )

    contractors: Mapped[list["ProjectContractorModel"]] = relationship(
        "ProjectContractorModel",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    line_items: Mapped[list["LineItemModel"]] = relationship(
        "LineItemModel",
        back_populates="project",
        order_by="LineItemModel.item_number",
        lazy="selectin",
    )

    def to_dto(self):
        from settlement_kernel.domain.dtos import ProjectInfo

        return ProjectInfo(
            id=self.id,
            name=self.name,
            organization_id=self.organization_id,
            director_id=self.director_id,
            retainage_percent=self.retainage_percent,
            open_period_number=self.open_period_number,
            open_period_started_on=self.open_period_started_on,
            reviewer_ids=tuple(r.reviewer_id for r in self.reviewers),
            contractor_ids=tuple(c.contractor_id for c in self.contractors),
        )

    def __repr__(self) -> str:
        return f"<ProjectModel {self.name} period={self.open_period_number}>"


class ProjectReviewerModel(TrackedBase):
    """One position in a project's ordered reviewer roster."""

    __tablename__ = "project_reviewers"

    __table_args__ = (
        UniqueConstraint("project_id", "review_order", name="uq_project_review_order"),
        UniqueConstraint("project_id", "reviewer_id", name="uq_project_reviewer"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    reviewer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    review_order: Mapped[int] = mapped_column(Integer, nullable=False)

    project: Mapped["ProjectModel"] = relationship("ProjectModel", back_populates="reviewers")


class ProjectContractorModel(TrackedBase):
    """A contractor allowed to bill against the project."""

    __tablename__ = "project_contractors"

    __table_args__ = (
        UniqueConstraint("project_id", "contractor_id", name="uq_project_contractor"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    contractor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    project: Mapped["ProjectModel"] = relationship("ProjectModel", back_populates="contractors")


class LineItemModel(TrackedBase):
    """
    A schedule-of-values line.

    Only the four stored components live here.  Completed-to-date,
    percent, balance and retainage are derived on read by
    ``domain.ledger_math`` and never persisted.
    """

    __tablename__ = "line_items"

    __table_args__ = (
        UniqueConstraint("project_id", "item_number", name="uq_line_item_number"),
        Index("idx_line_item_project", "project_id"),
        CheckConstraint("scheduled_value > 0", name="ck_line_item_scheduled_positive"),
        CheckConstraint("materials_stored >= 0", name="ck_line_item_stored_non_negative"),
    )

    project_id: Mapped[UUID] = mapped_column(ForeignKey("projects.id"), nullable=False)
    item_number: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    scheduled_value: Mapped[Decimal] = mapped_column(nullable=False)
    from_previous_application: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0"),
    )
    this_period: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    materials_stored: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    last_rolled_application_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    project: Mapped["ProjectModel"] = relationship("ProjectModel", back_populates="line_items")

    def to_figures(self, retainage_percent: Decimal, policy=None):
        from settlement_kernel.domain.ledger_math import compute_figures
        from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY

        return compute_figures(
            item_number=self.item_number,
            description=self.description,
            scheduled_value=self.scheduled_value,
            from_previous_application=self.from_previous_application,
            this_period=self.this_period,
            materials_stored=self.materials_stored,
            retainage_percent=retainage_percent,
            policy=policy or DEFAULT_LEDGER_POLICY,
        )

    def to_dto(self, retainage_percent: Decimal, policy=None):
        from settlement_kernel.domain.dtos import LineItemInfo

        return LineItemInfo(
            id=self.id,
            project_id=self.project_id,
            version=self.version,
            figures=self.to_figures(retainage_percent, policy),
        )

    def __repr__(self) -> str:
        return f"<LineItemModel #{self.item_number} {self.description!r}>"
