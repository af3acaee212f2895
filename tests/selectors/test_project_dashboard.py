"""
Tests for the read models (ProjectSelector, PayApplicationSelector).
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_kernel.domain.workflow import PayApplicationStatus
from settlement_kernel.exceptions import (
    LineItemNotFoundError,
    PayApplicationNotFoundError,
    ProjectNotFoundError,
)
from settlement_kernel.selectors.pay_application_selector import PayApplicationSelector
from settlement_kernel.selectors.project_selector import ProjectSelector

INCURRED = date(2024, 2, 1)


class TestProjectSelector:

    def test_load_project(self, session, project, reviewer_one, reviewer_two, contractor):
        info = ProjectSelector(session).load_project(project.id)
        assert info.name == "Riverside Clinic"
        assert info.open_period_number == 1
        assert info.reviewer_ids == (reviewer_one.id, reviewer_two.id)
        assert info.contractor_ids == (contractor.id,)

    def test_unknown_ids(self, session):
        selector = ProjectSelector(session)
        with pytest.raises(ProjectNotFoundError):
            selector.load_project(uuid4())
        with pytest.raises(LineItemNotFoundError):
            selector.expenses(uuid4())

    def test_line_items_in_item_order(self, session, project, create_line_item):
        create_line_item("1000", "Demolition", item_number=3)
        create_line_item("2000", "Framing", item_number=1)
        lines = ProjectSelector(session).line_items(project.id)
        assert [li.figures.item_number for li in lines] == [1, 3]
        assert lines[0].figures.description == "Framing"


class TestDashboard:

    def test_totals_and_pending_count(
        self, session, settlement_engine, contractor, project, create_line_item, approved_expense,
    ):
        first = create_line_item("10000")
        second = create_line_item("30000")
        approved_expense(first.id, "4000")
        approved_expense(second.id, "6000")
        settlement_engine.add_expense(contractor, second.id, "500", "labor", INCURRED)
        settlement_engine.set_materials_stored(contractor, second.id, "2000")

        board = ProjectSelector(session).dashboard(project.id)

        assert board.pending_expense_count == 1
        assert board.open_application is None
        assert board.totals.line_count == 2
        assert board.totals.contract_sum == Decimal("40000")
        assert board.totals.this_period == Decimal("10000")
        assert board.totals.total_completed_and_stored == Decimal("12000")
        assert board.totals.retainage == Decimal("500.00")
        assert board.totals.balance_to_finish == Decimal("30000")
        assert board.totals.percent_complete == Decimal("25.00")

    def test_open_application_shown(self, session, settlement_engine, contractor, project, line_item):
        draft = settlement_engine.create_draft(contractor, project.id)
        board = ProjectSelector(session).dashboard(project.id)
        assert board.open_application.id == draft.id

    def test_totals_match_sum_of_lines(self, session, project, create_line_item, approved_expense):
        for value, spent in (("5000", "1250"), ("7000", "700"), ("3000", "3000")):
            approved_expense(create_line_item(value).id, spent)
        board = ProjectSelector(session).dashboard(project.id)
        assert board.totals.retainage == sum(li.figures.retainage for li in board.line_items)
        assert board.totals.total_completed_to_date == sum(
            li.figures.total_completed_to_date for li in board.line_items
        )


class TestPayApplicationSelector:

    def test_list_for_project(self, session, settlement_engine, contractor, project, line_item, review_cycle):
        first = review_cycle(project.id)
        second = settlement_engine.create_draft(contractor, project.id)
        apps = PayApplicationSelector(session).list_for_project(project.id)
        assert [a.id for a in apps] == [first.id, second.id]
        assert [a.status for a in apps] == [PayApplicationStatus.FINALIZED, PayApplicationStatus.DRAFT]

    def test_unknown_application(self, session):
        with pytest.raises(PayApplicationNotFoundError):
            PayApplicationSelector(session).load(uuid4())
