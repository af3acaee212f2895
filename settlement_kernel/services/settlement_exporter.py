"""
SettlementExporter -- payment certificate for a finalized pay application.

Responsibility:
    Loads the frozen snapshot of a finalized application and hands it to
    ``domain.certificate.build_certificate``.  Read-only: exporting never
    writes, so the same application always exports the same certificate.

Architecture position:
    Kernel > Services (read path).  Uses SettlementStore for loads only.

Failure modes:
    - PayApplicationNotFoundError for unknown ids.
    - NotFinalizedError unless the application is finalized.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from settlement_kernel.domain.certificate import Certificate, build_certificate
from settlement_kernel.domain.policy import DEFAULT_LEDGER_POLICY, LedgerPolicy
from settlement_kernel.domain.workflow import PayApplicationStatus
from settlement_kernel.exceptions import NotFinalizedError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.store import SettlementStore

logger = get_logger("services.settlement_exporter")


class SettlementExporter:
    """Builds certificates from snapshot lines only."""

    def __init__(
        self,
        session: Session,
        store: SettlementStore | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self._store = store or SettlementStore(session)
        self._policy = policy or DEFAULT_LEDGER_POLICY

    def export(self, pay_application_id: UUID) -> Certificate:
        pay_app = self._store.load_pay_application(pay_application_id)
        if pay_app.status != PayApplicationStatus.FINALIZED.value:
            raise NotFinalizedError(str(pay_app.id), pay_app.status)

        project = self._store.load_project(pay_app.project_id)
        retainage_percent = pay_app.snapshot_retainage_percent
        snapshot = [
            line.to_figures(retainage_percent, self._policy)
            for line in pay_app.lines_for_submission(pay_app.submission_number)
        ]

        certificate = build_certificate(
            pay_application_id=pay_app.id,
            project_id=project.id,
            project_name=project.name,
            contractor_id=pay_app.contractor_id,
            application_number=pay_app.application_number,
            billing_period=pay_app.billing_period,
            submission_number=pay_app.submission_number,
            retainage_percent=retainage_percent,
            submitted_at=pay_app.submitted_at,
            finalized_at=pay_app.finalized_at,
            director_id=pay_app.finalized_by_id,
            snapshot_lines=snapshot,
            previous_certificates=pay_app.snapshot_previous_certificates,
            decisions=[d.to_dto() for d in pay_app.decisions],
            policy=self._policy,
        )
        logger.info(
            "certificate_exported",
            extra={
                "pay_application_id": str(pay_app.id),
                "line_count": len(certificate.lines),
                "fingerprint": certificate.fingerprint,
            },
        )
        return certificate
