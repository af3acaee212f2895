"""
Tests for payment certificate construction (``settlement_kernel.domain.certificate``).

- Summary figures follow from the snapshot lines and previous certificates.
- Only decisions of the certified submission appear as sign-offs.
- The fingerprint is deterministic and insensitive to input line order.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from settlement_kernel.domain.certificate import build_certificate
from settlement_kernel.domain.dtos import ReviewDecisionInfo
from settlement_kernel.domain.ledger_math import compute_figures
from settlement_kernel.domain.workflow import ReviewDecision

APP_ID = uuid4()
PROJECT_ID = uuid4()
CONTRACTOR_ID = uuid4()
DIRECTOR_ID = uuid4()
R1, R2 = uuid4(), uuid4()
WHEN = datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)


def _line(item, scheduled, previous, this_period, stored="0"):
    return compute_figures(
        item_number=item,
        description=f"Line {item}",
        scheduled_value=Decimal(scheduled),
        from_previous_application=Decimal(previous),
        this_period=Decimal(this_period),
        materials_stored=Decimal(stored),
        retainage_percent=Decimal("10"),
    )


def _decision(submission, position, reviewer, decision=ReviewDecision.APPROVED):
    return ReviewDecisionInfo(
        submission_number=submission,
        position=position,
        reviewer_id=reviewer,
        decision=decision,
        note="",
        decided_at=WHEN,
    )


def _build(lines, previous="0", decisions=()):
    return build_certificate(
        pay_application_id=APP_ID,
        project_id=PROJECT_ID,
        project_name="Riverside Clinic",
        contractor_id=CONTRACTOR_ID,
        application_number=2,
        billing_period=2,
        submission_number=2,
        retainage_percent=Decimal("10"),
        submitted_at=WHEN,
        finalized_at=WHEN,
        director_id=DIRECTOR_ID,
        snapshot_lines=lines,
        previous_certificates=Decimal(previous),
        decisions=list(decisions),
    )


class TestCertificateSummary:

    def test_summary_figures(self):
        cert = _build(
            [_line(1, "10000", "4000", "1000", stored="500"), _line(2, "20000", "0", "2000")],
            previous="3600",
        )
        summary = cert.summary
        assert summary.original_contract_sum == Decimal("30000")
        assert summary.total_completed_and_stored == Decimal("7500")
        assert summary.retainage == Decimal("700.00")
        assert summary.total_earned_less_retainage == Decimal("6800.00")
        assert summary.less_previous_certificates == Decimal("3600")
        assert summary.current_payment_due == Decimal("3200.00")
        assert summary.balance_to_finish_including_retainage == Decimal("23200.00")

    def test_lines_sorted_by_item_number(self):
        cert = _build([_line(3, "100", "0", "0"), _line(1, "100", "0", "0")])
        assert [line.item_number for line in cert.lines] == [1, 3]


class TestReviewerSignoffs:

    def test_only_current_submission_decisions(self):
        decisions = [
            _decision(1, 0, R1),
            _decision(1, 1, R2, ReviewDecision.CHANGES_REQUESTED),
            _decision(2, 1, R2),
            _decision(2, 0, R1),
        ]
        cert = _build([_line(1, "100", "0", "10")], decisions=decisions)
        assert [(s.position, s.reviewer_id) for s in cert.reviewers] == [(0, R1), (1, R2)]
        assert all(s.decision == "approved" for s in cert.reviewers)


class TestFingerprint:

    def test_deterministic_and_order_insensitive(self):
        a = _build([_line(1, "100", "0", "10"), _line(2, "200", "0", "20")])
        b = _build([_line(2, "200", "0", "20"), _line(1, "100", "0", "10")])
        assert a.fingerprint == b.fingerprint

    def test_changes_with_figures(self):
        a = _build([_line(1, "100", "0", "10")])
        b = _build([_line(1, "100", "0", "11")])
        assert a.fingerprint != b.fingerprint


class TestSerialization:

    def test_to_dict_is_json_ready(self):
        cert = _build([_line(1, "100", "0", "10")])
        record = cert.to_dict()
        assert record["pay_application_id"] == str(APP_ID)
        assert record["lines"][0]["this_period"] == "10"
        json.dumps(record)

    def test_to_json_is_canonical(self):
        cert = _build([_line(1, "100", "0", "10")])
        assert json.loads(cert.to_json())["fingerprint"] == cert.fingerprint
