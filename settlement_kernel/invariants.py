"""
Kernel Invariants Contract.

These invariants are structural law for the settlement engine. No ledger
policy or configuration value may switch them off.

This module exists solely to declare them explicitly. Enforcement is
distributed across domain.ledger_math, domain.workflow, the services and
the ORM immutability listeners.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    SCHEDULE_CEILING = "schedule_ceiling"
    """previous + this period + materials stored never exceeds the
    scheduled value. Enforced by ledger_math.check_line_totals before
    every line item write."""

    THIS_PERIOD_RECONCILED = "this_period_reconciled"
    """this_period equals the sum of approved expenses in the open billing
    period. Enforced by SovLedgerService.recompute after every approval."""

    SNAPSHOT_IMMUTABLE = "snapshot_immutable"
    """Submission snapshot lines are never updated or deleted. Enforced by
    ORM listeners (settlement_kernel.db.immutability)."""

    REVIEWER_CURSOR_BOUNDED = "reviewer_cursor_bounded"
    """0 <= current_reviewer_index <= len(reviewer_chain). Enforced by
    ReviewState.__post_init__ and a DB check constraint on the lower bound."""

    APPROVAL_IS_ONE_WAY = "approval_is_one_way"
    """Approved expenses are immutable; corrections are reversal entries."""

    ROLL_FORWARD_IDEMPOTENT = "roll_forward_idempotent"
    """Rolling a line item forward twice for one pay application is a
    no-op. Enforced by last_rolled_application_id."""


ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "settlement_config",
)
