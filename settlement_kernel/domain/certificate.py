"""
Payment certificate (``settlement_kernel.domain.certificate``).

Responsibility
--------------
Pure construction of the canonical certificate record (the AIA G702 /
G703 figure set) from a finalized pay application's frozen snapshot.
Layout is not our concern; the record carries only the data.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  ``SettlementExporter`` loads the
snapshot rows and hands them to ``build_certificate``.

Invariants enforced
-------------------
* Figures come only from snapshot lines, never from live ledger rows, so
  an exported certificate is stable even if the schedule is edited later.
* ``fingerprint`` is a deterministic hash of lines and summary; the same
  snapshot always yields the same fingerprint.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from settlement_kernel.domain.dtos import ReviewDecisionInfo
from settlement_kernel.domain.ledger_math import LineItemFigures, aggregate
from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy
from settlement_kernel.utils.hashing import canonicalize_json, hash_payload


@dataclass(frozen=True)
class CertificateLine:
    """One continuation-sheet row."""

    item_number: int
    description: str
    scheduled_value: Decimal
    from_previous_application: Decimal
    this_period: Decimal
    materials_presently_stored: Decimal
    total_completed_to_date: Decimal
    total_completed_and_stored: Decimal
    percent_complete: Decimal
    balance_to_finish: Decimal
    retainage: Decimal

    @classmethod
    def from_figures(cls, figures: LineItemFigures) -> CertificateLine:
        return cls(
            item_number=figures.item_number,
            description=figures.description,
            scheduled_value=figures.scheduled_value,
            from_previous_application=figures.from_previous_application,
            this_period=figures.this_period,
            materials_presently_stored=figures.materials_stored,
            total_completed_to_date=figures.total_completed_to_date,
            total_completed_and_stored=figures.total_completed_and_stored,
            percent_complete=figures.percent_complete,
            balance_to_finish=figures.balance_to_finish,
            retainage=figures.retainage,
        )


@dataclass(frozen=True)
class CertificateSummary:
    """Application-for-payment summary block."""

    original_contract_sum: Decimal
    total_completed_and_stored: Decimal
    retainage: Decimal
    total_earned_less_retainage: Decimal
    less_previous_certificates: Decimal
    current_payment_due: Decimal
    balance_to_finish_including_retainage: Decimal


@dataclass(frozen=True)
class ReviewerSignoff:
    position: int
    reviewer_id: UUID
    decision: str
    note: str
    decided_at: datetime


@dataclass(frozen=True)
class Certificate:
    """Serializable, immutable payment certificate."""

    pay_application_id: UUID
    project_id: UUID
    project_name: str
    contractor_id: UUID
    application_number: int
    billing_period: int
    submission_number: int
    retainage_percent: Decimal
    submitted_at: datetime | None
    finalized_at: datetime
    director_id: UUID
    lines: tuple[CertificateLine, ...]
    summary: CertificateSummary
    reviewers: tuple[ReviewerSignoff, ...]
    fingerprint: str

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready record: Decimals, UUIDs and datetimes become strings."""
        return _jsonable(asdict(self))

    def to_json(self) -> str:
        return canonicalize_json(asdict(self))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def build_certificate(
    *,
    pay_application_id: UUID,
    project_id: UUID,
    project_name: str,
    contractor_id: UUID,
    application_number: int,
    billing_period: int,
    submission_number: int,
    retainage_percent: Decimal,
    submitted_at: datetime | None,
    finalized_at: datetime,
    director_id: UUID,
    snapshot_lines: Sequence[LineItemFigures],
    previous_certificates: Decimal,
    decisions: Sequence[ReviewDecisionInfo],
    policy: LedgerPolicy = DEFAULT_LEDGER_POLICY,
) -> Certificate:
    """Assemble the certificate; a pure function of its arguments."""
    ordered = sorted(snapshot_lines, key=lambda f: f.item_number)
    totals = aggregate(ordered, policy)

    summary = CertificateSummary(
        original_contract_sum=totals.contract_sum,
        total_completed_and_stored=totals.total_completed_and_stored,
        retainage=totals.retainage,
        total_earned_less_retainage=totals.total_earned_less_retainage,
        less_previous_certificates=previous_certificates,
        current_payment_due=totals.total_earned_less_retainage - previous_certificates,
        balance_to_finish_including_retainage=(
            totals.contract_sum - totals.total_earned_less_retainage
        ),
    )
    lines = tuple(CertificateLine.from_figures(f) for f in ordered)
    reviewers = tuple(
        ReviewerSignoff(
            position=d.position,
            reviewer_id=d.reviewer_id,
            decision=d.decision.value,
            note=d.note,
            decided_at=d.decided_at,
        )
        for d in sorted(
            (d for d in decisions if d.submission_number == submission_number),
            key=lambda d: d.position,
        )
    )
    fingerprint = hash_payload({
        "pay_application_id": pay_application_id,
        "submission_number": submission_number,
        "lines": [asdict(line) for line in lines],
        "summary": asdict(summary),
    })

    return Certificate(
        pay_application_id=pay_application_id,
        project_id=project_id,
        project_name=project_name,
        contractor_id=contractor_id,
        application_number=application_number,
        billing_period=billing_period,
        submission_number=submission_number,
        retainage_percent=retainage_percent,
        submitted_at=submitted_at,
        finalized_at=finalized_at,
        director_id=director_id,
        lines=lines,
        summary=summary,
        reviewers=reviewers,
        fingerprint=fingerprint,
    )
