"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A pay application is a legal billing document.  Once a reviewer approves
an expense, once a submission is snapshotted, once a reviewer records a
decision and once a director finalizes, those records must never change.
Corrections go through new rows (reversal entries, resubmissions), so the
history stays visible.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here intercept them:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                | When Immutable
----------------------|----------------------------------------------
ExpenseModel          | After approved = True
PayApplicationModel   | After status = finalized
ReviewerSlotModel     | ALWAYS (chain fixed at first submission)
SnapshotLineModel     | ALWAYS (new submissions write new rows)
ReviewDecisionModel   | ALWAYS (append-only decision history)
AuditEvent            | ALWAYS

updated_at / updated_by_id are audit metadata and may change on any row.
Checks look at the value the row had BEFORE this flush, so the approving
or finalizing write itself goes through.

===============================================================================
USAGE
===============================================================================

    from settlement_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; init_engine_from_url calls it

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
    # ... do forbidden operation ...
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from settlement_kernel.exceptions import ImmutabilityViolationError
from settlement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_MUTABLE_METADATA = frozenset({"updated_at", "updated_by_id", "version"})


def _value_before_flush(target, attr_name: str):
    history = get_history(target, attr_name)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, attr_name)


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _MUTABLE_METADATA
        and insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# Expenses


def _check_expense_immutability(mapper, connection, target):
    """An approved expense is frozen; the approving write itself is allowed."""
    if not _value_before_flush(target, "approved"):
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "Expense", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on approved expense",
            field=changed[0],
        )


def _check_expense_delete(mapper, connection, target):
    if _value_before_flush(target, "approved"):
        _block("Expense", target, "DELETE", "Approved expenses cannot be deleted")


# Pay applications


def _check_pay_application_immutability(mapper, connection, target):
    """A finalized pay application is frozen; the finalizing write is allowed."""
    if _value_before_flush(target, "status") != "finalized":
        return
    changed = _changed_fields(target)
    if changed:
        _block(
            "PayApplication", target, "UPDATE",
            f"Cannot modify field '{changed[0]}' on finalized pay application",
            field=changed[0],
        )


def _check_pay_application_delete(mapper, connection, target):
    if _value_before_flush(target, "status") != "draft":
        _block(
            "PayApplication", target, "DELETE",
            "Only draft pay applications can be deleted",
        )


# Append-only records


def _append_only(entity_type: str):
    def _check_update(mapper, connection, target):
        changed = _changed_fields(target)
        if changed:
            _block(
                entity_type, target, "UPDATE",
                f"{entity_type} records are immutable",
                field=changed[0],
            )

    def _check_delete(mapper, connection, target):
        _block(entity_type, target, "DELETE", f"{entity_type} records cannot be deleted")

    _check_update.__name__ = f"_check_{entity_type.lower()}_immutability"
    _check_delete.__name__ = f"_check_{entity_type.lower()}_delete"
    return _check_update, _check_delete


_check_snapshot_line_update, _check_snapshot_line_delete = _append_only("SnapshotLine")
_check_decision_update, _check_decision_delete = _append_only("ReviewDecision")
_check_slot_update, _check_slot_delete = _append_only("ReviewerSlot")
_check_audit_event_update, _check_audit_event_delete = _append_only("AuditEvent")


def _listener_table():
    from settlement_kernel.models.audit_event import AuditEvent
    from settlement_kernel.models.expense import ExpenseModel
    from settlement_kernel.models.pay_application import (
        PayApplicationModel,
        ReviewDecisionModel,
        ReviewerSlotModel,
        SnapshotLineModel,
    )

    return (
        (ExpenseModel, "before_update", _check_expense_immutability),
        (ExpenseModel, "before_delete", _check_expense_delete),
        (PayApplicationModel, "before_update", _check_pay_application_immutability),
        (PayApplicationModel, "before_delete", _check_pay_application_delete),
        (SnapshotLineModel, "before_update", _check_snapshot_line_update),
        (SnapshotLineModel, "before_delete", _check_snapshot_line_delete),
        (ReviewDecisionModel, "before_update", _check_decision_update),
        (ReviewDecisionModel, "before_delete", _check_decision_delete),
        (ReviewerSlotModel, "before_update", _check_slot_update),
        (ReviewerSlotModel, "before_delete", _check_slot_delete),
        (AuditEvent, "before_update", _check_audit_event_update),
        (AuditEvent, "before_delete", _check_audit_event_delete),
    )


def register_immutability_listeners():
    """Register all immutability enforcement event listeners (idempotent)."""
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listener_table():
        _safe_remove_listener(target, event_name, listener_fn)
