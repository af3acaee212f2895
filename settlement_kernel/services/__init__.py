"""Write-side services of the settlement kernel."""

from settlement_kernel.services.access_guard import OPERATION_ROLES, AccessGuard
from settlement_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from settlement_kernel.services.expense_ledger_service import ExpenseLedgerService
from settlement_kernel.services.review_workflow_service import ReviewWorkflowService
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.services.settlement_engine import SettlementEngine
from settlement_kernel.services.settlement_exporter import SettlementExporter
from settlement_kernel.services.sov_ledger_service import SovLedgerService
from settlement_kernel.services.store import SettlementStore

__all__ = [
    "OPERATION_ROLES",
    "AccessGuard",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "ExpenseLedgerService",
    "ReviewWorkflowService",
    "SequenceService",
    "SettlementEngine",
    "SettlementExporter",
    "SettlementStore",
    "SovLedgerService",
]
