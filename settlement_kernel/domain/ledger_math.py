"""
Schedule-of-values arithmetic (``settlement_kernel.domain.ledger_math``).

Responsibility
--------------
The single enforcement point for every roll-up figure of a line item and
a project.  Services, selectors and the certificate builder all derive
their numbers here; nothing else re-implements percent, balance or
retainage math.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over ``Decimal``.  ZERO I/O.

Invariants enforced
-------------------
* previous + this period + materials stored <= scheduled value
  (``check_line_totals`` raises ``OverScheduleError``, never clamps).
* previous + this period >= 0 (``NegativeCompletionError``).
* Derived figures are never stored: they are recomputed from the four
  stored components on every read.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy
from settlement_kernel.domain.values import HUNDRED, ZERO, percent_of, quantize_money
from settlement_kernel.exceptions import NegativeCompletionError, OverScheduleError


@dataclass(frozen=True)
class LineItemFigures:
    """The full figure set of one schedule-of-values line."""

    item_number: int
    description: str
    scheduled_value: Decimal
    from_previous_application: Decimal
    this_period: Decimal
    materials_stored: Decimal
    total_completed_to_date: Decimal
    total_completed_and_stored: Decimal
    percent_complete: Decimal
    balance_to_finish: Decimal
    retainage: Decimal


@dataclass(frozen=True)
class ProjectTotals:
    """Roll-up of every line in a project's schedule of values."""

    line_count: int
    contract_sum: Decimal
    from_previous_application: Decimal
    this_period: Decimal
    materials_stored: Decimal
    total_completed_to_date: Decimal
    total_completed_and_stored: Decimal
    retainage: Decimal
    total_earned_less_retainage: Decimal
    balance_to_finish: Decimal
    percent_complete: Decimal


def check_line_totals(
    line_item_id: str,
    scheduled_value: Decimal,
    from_previous_application: Decimal,
    this_period: Decimal,
    materials_stored: Decimal,
) -> None:
    """
    Validate the stored components of a line item.

    Raises:
        OverScheduleError: previous + this period + stored > scheduled value.
        NegativeCompletionError: previous + this period < 0.
    """
    completed = from_previous_application + this_period
    if completed < ZERO:
        raise NegativeCompletionError(line_item_id, str(completed))
    total = completed + materials_stored
    if total > scheduled_value:
        raise OverScheduleError(line_item_id, str(scheduled_value), str(total))


def sum_this_period(approved_amounts: Iterable[Decimal]) -> Decimal:
    """Sum approved expense amounts; reversals carry negative amounts."""
    return sum(approved_amounts, ZERO)


def roll_forward_totals(
    from_previous_application: Decimal,
    this_period: Decimal,
) -> tuple[Decimal, Decimal]:
    """Return (new previous, new this period) for a period close."""
    return from_previous_application + this_period, ZERO


def compute_retainage(
    total_completed_to_date: Decimal,
    retainage_percent: Decimal,
    policy: LedgerPolicy = DEFAULT_LEDGER_POLICY,
) -> Decimal:
    """Retainage withheld on work completed to date."""
    return quantize_money(
        total_completed_to_date * retainage_percent / HUNDRED,
        policy.money_quantum,
    )


def compute_figures(
    *,
    item_number: int,
    description: str,
    scheduled_value: Decimal,
    from_previous_application: Decimal,
    this_period: Decimal,
    materials_stored: Decimal,
    retainage_percent: Decimal,
    policy: LedgerPolicy = DEFAULT_LEDGER_POLICY,
) -> LineItemFigures:
    """Derive the full figure set from the four stored components."""
    completed = from_previous_application + this_period
    return LineItemFigures(
        item_number=item_number,
        description=description,
        scheduled_value=scheduled_value,
        from_previous_application=from_previous_application,
        this_period=this_period,
        materials_stored=materials_stored,
        total_completed_to_date=completed,
        total_completed_and_stored=completed + materials_stored,
        percent_complete=percent_of(completed, scheduled_value, policy.percent_places),
        balance_to_finish=scheduled_value - completed,
        retainage=compute_retainage(completed, retainage_percent, policy),
    )


def aggregate(
    figures: Iterable[LineItemFigures],
    policy: LedgerPolicy = DEFAULT_LEDGER_POLICY,
) -> ProjectTotals:
    """Sum line figures into project totals (the G702 summary block)."""
    lines = list(figures)
    contract_sum = sum((f.scheduled_value for f in lines), ZERO)
    completed = sum((f.total_completed_to_date for f in lines), ZERO)
    completed_and_stored = sum((f.total_completed_and_stored for f in lines), ZERO)
    retainage = sum((f.retainage for f in lines), ZERO)
    return ProjectTotals(
        line_count=len(lines),
        contract_sum=contract_sum,
        from_previous_application=sum((f.from_previous_application for f in lines), ZERO),
        this_period=sum((f.this_period for f in lines), ZERO),
        materials_stored=sum((f.materials_stored for f in lines), ZERO),
        total_completed_to_date=completed,
        total_completed_and_stored=completed_and_stored,
        retainage=retainage,
        total_earned_less_retainage=completed_and_stored - retainage,
        balance_to_finish=contract_sum - completed,
        percent_complete=percent_of(completed, contract_sum, policy.percent_places),
    )
