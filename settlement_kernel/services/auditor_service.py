"""
AuditorService -- hash-chained audit log for the settlement kernel.

Every ledger mutation and review transition appends one ``AuditEvent``.
Events are ordered by a counter from SequenceService and each one
commits to its predecessor:

    payload_hash = sha256(canonical_json(payload))
    hash         = sha256(entity_type | entity_id | action | payload_hash | prev_hash)

``validate_chain()`` recomputes both digests for every row, so editing a
payload, an action or a link anywhere in the log is detected.  Rows are
append-only (see ``db/immutability.py``); the chain catches writes that
bypass the ORM.

The service flushes; it never commits.
"""

from dataclasses import dataclass
from datetime import datetime
from itertools import pairwise
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import AuditChainBrokenError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.audit_event import AuditAction, AuditEvent
from settlement_kernel.services.sequence_service import SequenceService
from settlement_kernel.utils.hashing import hash_audit_event, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditTraceEntry":
        return cls(
            seq=event.seq,
            action=AuditAction(event.action),
            occurred_at=event.occurred_at,
            actor_id=event.actor_id,
            payload=event.payload or {},
            hash=event.hash,
        )


@dataclass(frozen=True)
class AuditTrace:
    """One entity's history, oldest first."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(entry.action for entry in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


def _link_hash(event: AuditEvent) -> str:
    return hash_audit_event(
        entity_type=event.entity_type,
        entity_id=str(event.entity_id),
        action=event.action,
        payload_hash=event.payload_hash,
        prev_hash=event.prev_hash,
    )


def _plain(value: Any) -> Any:
    """JSON-safe form of an audit detail; Decimals and UUIDs become strings."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return str(value)


class AuditorService:

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)

    # -- appending -----------------------------------------------------------

    def _append(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any],
    ) -> AuditEvent:
        # The counter row lock serializes writers, so the tail read below
        # is the true predecessor.
        seq = self._sequence.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._session.scalars(
            select(AuditEvent.hash).order_by(AuditEvent.seq.desc()).limit(1)
        ).first()

        event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action.value,
            actor_id=actor_id,
            occurred_at=self._clock.now(),
            payload=payload,
            payload_hash=hash_payload(payload),
            prev_hash=prev_hash,
        )
        event.hash = _link_hash(event)
        self._session.add(event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={"entity_type": entity_type, "entity_id": str(entity_id), "action": action.value, "seq": seq},
        )
        return event

    def record_project_created(
        self, project_id: UUID, name: str, retainage_percent: str, actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "Project", project_id, AuditAction.PROJECT_CREATED, actor_id,
            {"name": name, "retainage_percent": retainage_percent},
        )

    def record_period_opened(
        self, project_id: UUID, period_number: int, closed_by_application_id: UUID, actor_id: UUID,
    ) -> AuditEvent:
        return self._append(
            "Project", project_id, AuditAction.PERIOD_OPENED, actor_id,
            {"period_number": period_number, "closed_by_application_id": str(closed_by_application_id)},
        )

    def record_line_item_change(
        self, line_item_id: UUID, action: AuditAction, actor_id: UUID, **details: Any,
    ) -> AuditEvent:
        return self._append("LineItem", line_item_id, action, actor_id, _plain_dict(details))

    def record_expense_change(
        self, expense_id: UUID, action: AuditAction, actor_id: UUID, **details: Any,
    ) -> AuditEvent:
        return self._append("Expense", expense_id, action, actor_id, _plain_dict(details))

    def record_review_transition(
        self,
        pay_application_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        from_status: str,
        to_status: str,
        **details: Any,
    ) -> AuditEvent:
        payload = {"from_status": from_status, "to_status": to_status, **_plain_dict(details)}
        return self._append("PayApplication", pay_application_id, action, actor_id, payload)

    # -- verification --------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Recompute every digest and link in ``seq`` order.

        Returns True for an intact (or empty) log.

        Raises:
            AuditChainBrokenError: at the first event whose payload digest,
                own hash or back-link does not check out.
        """
        events = self._session.scalars(select(AuditEvent).order_by(AuditEvent.seq)).all()
        if not events:
            return True

        if events[0].prev_hash is not None:
            self._broken(events[0], "None", events[0].prev_hash)
        for event in events:
            expected = _link_hash(event)
            if event.hash != expected or hash_payload(event.payload or {}) != event.payload_hash:
                self._broken(event, expected, event.hash)
        for previous, event in pairwise(events):
            if event.prev_hash != previous.hash:
                self._broken(event, previous.hash, event.prev_hash or "None")

        logger.info("audit_chain_valid", extra={"event_count": len(events)})
        return True

    @staticmethod
    def _broken(event: AuditEvent, expected: str, actual: str) -> None:
        logger.critical("audit_chain_broken", extra={"seq": event.seq, "audit_event_id": str(event.id)})
        raise AuditChainBrokenError(str(event.id), expected, actual)

    # -- reading -------------------------------------------------------------

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        events: Iterable[AuditEvent] = self._session.scalars(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.seq)
        )
        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=tuple(AuditTraceEntry.from_event(event) for event in events),
        )


def _plain_dict(details: dict[str, Any]) -> dict[str, Any]:
    return {key: _plain(value) for key, value in details.items()}
