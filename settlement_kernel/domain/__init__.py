"""
Pure domain layer for the settlement kernel.

Everything in this package is free of I/O: ledger arithmetic, the review
state machine, certificate construction and the value objects passed
across the service boundary.
"""

from settlement_kernel.domain.certificate import (
    Certificate,
    CertificateLine,
    CertificateSummary,
    ReviewerSignoff,
    build_certificate,
)
from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.dtos import (
    ExpenseInfo,
    LineItemInfo,
    PayApplicationInfo,
    ProjectInfo,
    ReviewDecisionInfo,
)
from settlement_kernel.domain.identity import Actor, IdentityProvider, Role
from settlement_kernel.domain.ledger_math import (
    LineItemFigures,
    ProjectTotals,
    aggregate,
    check_line_totals,
    compute_figures,
)
from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy
from settlement_kernel.domain.workflow import (
    PayApplicationStatus,
    ReviewDecision,
    ReviewState,
)

__all__ = [
    "Actor",
    "Certificate",
    "CertificateLine",
    "CertificateSummary",
    "Clock",
    "DEFAULT_LEDGER_POLICY",
    "DeterministicClock",
    "ExpenseInfo",
    "IdentityProvider",
    "LedgerPolicy",
    "LineItemFigures",
    "LineItemInfo",
    "PayApplicationInfo",
    "PayApplicationStatus",
    "ProjectInfo",
    "ProjectTotals",
    "ReviewDecision",
    "ReviewDecisionInfo",
    "ReviewState",
    "ReviewerSignoff",
    "Role",
    "SystemClock",
    "aggregate",
    "build_certificate",
    "check_line_totals",
    "compute_figures",
]
